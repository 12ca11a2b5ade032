"""
PKCE secrets and authorization URL building.
"""

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from urllib.parse import urlencode

from .storage import StorageBackend

logger = logging.getLogger(__name__)

CODE_VERIFIER_KEY = "oauth:code_verifier"
NONCE_KEY = "oauth:nonce"


@dataclass
class PkceSecrets:
    """Verifier and nonce for one authorization request."""
    code_verifier: str
    nonce: str

    @classmethod
    def generate(cls) -> "PkceSecrets":
        return cls(
            code_verifier=secrets.token_urlsafe(64),
            nonce=secrets.token_urlsafe(16),
        )

    @property
    def code_challenge(self) -> str:
        """S256 challenge: base64url(sha256(verifier)) without padding."""
        digest = hashlib.sha256(self.code_verifier.encode("ascii")).digest()
        return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


@dataclass
class AuthorizationRequest:
    """A built authorization URL and the secrets bound to it."""
    url: str
    state: str
    code_verifier: str
    nonce: str


class PkceStore:
    """Persists the PKCE verifier and nonce across the redirect boundary."""

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    async def save(self, pkce: PkceSecrets) -> None:
        await self.storage.set(CODE_VERIFIER_KEY, pkce.code_verifier)
        await self.storage.set(NONCE_KEY, pkce.nonce)

    async def clear(self) -> None:
        """Erase the single-use secrets."""
        await self.storage.delete(CODE_VERIFIER_KEY)
        await self.storage.delete(NONCE_KEY)


async def build_authorization_url(
    authorize_url: str,
    client_id: str,
    redirect_uri: str,
    scopes: str,
    state: str,
    store: PkceStore,
) -> AuthorizationRequest:
    """
    Build the provider authorization URL for a PKCE code flow.

    Generates fresh PKCE secrets, persists them in ``store`` and returns them
    alongside the URL so the caller can hand the verifier to the exchanger.

    Args:
        authorize_url: Provider authorization endpoint
        client_id: Public OAuth client ID
        redirect_uri: Registered redirect URI
        scopes: Space-separated scopes
        state: Anti-forgery state token for this attempt
        store: Where the verifier and nonce are persisted

    Returns:
        Authorization request with URL and secrets
    """
    pkce = PkceSecrets.generate()
    await store.save(pkce)

    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": scopes,
        "state": state,
        "nonce": pkce.nonce,
        "code_challenge": pkce.code_challenge,
        "code_challenge_method": "S256",
    }
    url = f"{authorize_url}?{urlencode(params)}"
    logger.info(f"OAuth: requesting scopes: {scopes}")

    return AuthorizationRequest(
        url=url,
        state=state,
        code_verifier=pkce.code_verifier,
        nonce=pkce.nonce,
    )
