"""
Authorization code to access token exchange.
"""

import logging
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError

from ..config.settings import OAuthConfig
from ..exceptions import MissingVerifier, TokenExchangeFailed
from .pkce import PkceStore

logger = logging.getLogger(__name__)


class TokenResponse(BaseModel):
    """Token endpoint response."""
    model_config = ConfigDict(extra="allow")

    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    id_token: Optional[str] = None


class TokenExchanger:
    """Exchanges an authorization code for an access token using PKCE."""

    def __init__(
        self,
        config: OAuthConfig,
        pkce_store: PkceStore,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize token exchanger.

        Args:
            config: OAuth settings (client ID, redirect URI, token endpoint)
            pkce_store: Store holding the verifier, erased after success
            http_client: Shared HTTP client (created lazily if omitted)
        """
        self.config = config
        self.pkce_store = pkce_store
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self):
        """Close HTTP client if we created it."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def exchange(self, code: str, code_verifier: Optional[str]) -> TokenResponse:
        """Exchange authorization code for tokens.

        Args:
            code: Authorization code from the redirect
            code_verifier: PKCE verifier bound to the authorization request

        Returns:
            Token response with the access token

        Raises:
            MissingVerifier: No verifier available; no request is sent
            TokenExchangeFailed: Non-2xx response from the token endpoint
        """
        if not code_verifier:
            logger.error("Token exchange: no code_verifier available")
            raise MissingVerifier()

        client = await self._get_http_client()

        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.config.redirect_uri,
            "client_id": self.config.client_id,
            "code_verifier": code_verifier,
        }

        logger.info(f"Token exchange: sending request (client_id={self.config.client_id})")
        try:
            response = await client.post(
                self.config.token_url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.RequestError as e:
            logger.error(f"Token endpoint request failed: {e}")
            raise TokenExchangeFailed(0, str(e))

        if not response.is_success:
            body = response.text or response.reason_phrase
            logger.error(f"Token exchange failed ({response.status_code}): {body}")
            raise TokenExchangeFailed(response.status_code, body)

        try:
            token = TokenResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise TokenExchangeFailed(response.status_code, f"Malformed token response: {e}")

        # Single-use secrets
        await self.pkce_store.clear()
        logger.info("Token exchange: received access token")

        return token
