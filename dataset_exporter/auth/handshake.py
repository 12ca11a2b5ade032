"""
OAuth handshake coordination.

Opens the authorization window, waits for the authorization response on
either delivery channel, verifies the anti-forgery state token and exchanges
the code for an access token.

Delivery channels:
- Message channel: the redirect target posts ``{code, state}`` or ``{error}``
- Storage fallback: once the window is closed without a message, the payload
  persisted by the redirect target under ``oauth:callback`` is consumed

Both channels feed one single-fire future, so a response is processed at
most once.
"""

import asyncio
import json
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..config.settings import OAuthConfig
from ..exceptions import (
    AuthCancelled,
    AuthProviderError,
    AuthStateMismatch,
    AuthTimeout,
)
from .exchange import TokenExchanger
from .messages import MessageChannel, WindowMessage
from .pkce import PkceStore, build_authorization_url
from .storage import StorageBackend
from .window import AuthWindow, WindowGeometry, WindowOpener, popup_features

logger = logging.getLogger(__name__)

CALLBACK_STORAGE_KEY = "oauth:callback"
WINDOW_NAME = "Hugging Face OAuth"


@dataclass
class AuthSession:
    """One OAuth attempt."""
    state: str
    code_verifier: Optional[str] = None
    access_token: Optional[str] = None
    username: Optional[str] = None


def generate_state() -> str:
    """Random 256-bit state token, hex encoded."""
    return secrets.token_hex(32)


def unwrap_state(state: Any) -> Optional[str]:
    """The provider may echo state as ``{"state": "..."}``."""
    if isinstance(state, dict):
        state = state.get("state")
    return state if isinstance(state, str) else None


def verify_state(expected: str, received: Any) -> bool:
    """True iff the unwrapped received state equals the expected token."""
    unwrapped = unwrap_state(received)
    if unwrapped is None or not expected:
        return False
    return secrets.compare_digest(unwrapped.encode(), expected.encode())


def _deliver(future: asyncio.Future, payload: Dict[str, Any]) -> bool:
    if future.done():
        return False
    future.set_result(payload)
    return True


class OAuthHandshakeCoordinator:
    """Runs one PKCE authorization handshake at a time."""

    def __init__(
        self,
        config: OAuthConfig,
        pkce_store: PkceStore,
        exchanger: TokenExchanger,
        messages: MessageChannel,
        opener: WindowOpener,
        storage: StorageBackend,
        caller_geometry: Optional[WindowGeometry] = None,
    ):
        """
        Initialize handshake coordinator.

        Args:
            config: OAuth settings
            pkce_store: Store the URL builder persists PKCE secrets in
            exchanger: Token exchanger
            messages: Cross-window message channel
            opener: Opens the authorization window
            storage: Storage holding the fallback callback payload
            caller_geometry: Caller window geometry used to center the popup
        """
        self.config = config
        self.pkce_store = pkce_store
        self.exchanger = exchanger
        self.messages = messages
        self.opener = opener
        self.storage = storage
        self.caller_geometry = caller_geometry or WindowGeometry()
        self.session: Optional[AuthSession] = None
        self._window: Optional[AuthWindow] = None
        self._pending: Optional[asyncio.Future] = None

    def is_allowed_origin(self, origin: str) -> bool:
        return origin in self.config.allowed_origins()

    async def authenticate(self) -> AuthSession:
        """
        Run the handshake and return a session holding the access token.

        Raises:
            AuthCancelled: Window closed with no response on either channel
            AuthTimeout: No response within the configured timeout
            AuthStateMismatch: Response state does not match this session
            AuthProviderError: Provider returned an error
        """
        session = AuthSession(state=generate_state())
        self.session = session

        # A payload left over from an earlier attempt must not be consumed
        await self.storage.delete(CALLBACK_STORAGE_KEY)

        request = await build_authorization_url(
            authorize_url=self.config.authorize_url,
            client_id=self.config.client_id,
            redirect_uri=self.config.redirect_uri,
            scopes=self.config.scopes,
            state=session.state,
            store=self.pkce_store,
        )
        session.code_verifier = request.code_verifier

        self._window = self.opener.open(
            request.url, WINDOW_NAME, popup_features(self.caller_geometry)
        )

        try:
            payload = await self._await_delivery(self._window)
            return await self._complete(session, payload)
        finally:
            self._pending = None
            self._close_window()
            await self.storage.delete(CALLBACK_STORAGE_KEY)

    async def _await_delivery(self, window: AuthWindow) -> Dict[str, Any]:
        """Race the message channel against the window/storage fallback."""
        delivered = asyncio.get_running_loop().create_future()
        self._pending = delivered

        def on_message(message: WindowMessage) -> None:
            if not self.is_allowed_origin(message.origin):
                logger.warning(f"Ignoring message from unexpected origin: {message.origin}")
                return
            data = message.data or {}
            if not data.get("code") and not data.get("error"):
                logger.debug(f"Ignoring message without code or error from {message.origin}")
                return
            if _deliver(delivered, data):
                logger.info("OAuth: response received via message channel")

        with self.messages.listen(on_message):
            watcher = asyncio.create_task(self._watch_window(window, delivered))
            try:
                return await asyncio.wait_for(delivered, timeout=self.config.timeout_seconds)
            except asyncio.TimeoutError:
                logger.error(
                    f"OAuth timeout: authorization not completed within "
                    f"{self.config.timeout_seconds:g} seconds"
                )
                raise AuthTimeout(self.config.timeout_seconds)
            finally:
                watcher.cancel()
                await asyncio.gather(watcher, return_exceptions=True)

    async def _watch_window(self, window: AuthWindow, delivered: asyncio.Future) -> None:
        """Fall back to storage once the window has closed without a message."""
        check_interval = self.config.popup_check_interval_ms / 1000
        while not window.closed:
            await asyncio.sleep(check_interval)
            if delivered.done():
                return

        # Give the redirect target a moment to persist its payload
        await asyncio.sleep(self.config.fallback_grace_ms / 1000)
        if delivered.done():
            return

        try:
            payload = await self._read_fallback()
        except Exception as e:
            logger.error(f"OAuth: could not read storage fallback: {e}")
            if not delivered.done():
                error = AuthCancelled(
                    f"Could not read the stored authorization response: {e}",
                    context={"exception_type": type(e).__name__},
                )
                error.__cause__ = e
                delivered.set_exception(error)
            return
        if delivered.done():
            return
        if payload is not None:
            logger.info("OAuth: response found in storage fallback")
            delivered.set_result(payload)
        else:
            delivered.set_exception(AuthCancelled())

    async def _read_fallback(self) -> Optional[Dict[str, Any]]:
        """Consume the stored callback payload, if any."""
        raw = await self.storage.pop(CALLBACK_STORAGE_KEY)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error(f"Failed to process stored OAuth callback: {e}")
            return None
        if not isinstance(data, dict):
            logger.error("Stored OAuth callback is not an object")
            return None
        return {
            "code": data.get("code"),
            "state": data.get("state"),
            "error": data.get("error"),
        }

    async def _complete(self, session: AuthSession, payload: Dict[str, Any]) -> AuthSession:
        """Verify the response and exchange the code."""
        error = payload.get("error")
        if error:
            raise AuthProviderError(str(error))

        if not verify_state(session.state, payload.get("state")):
            logger.error("OAuth: state mismatch, discarding authorization response")
            raise AuthStateMismatch()

        code = payload.get("code")
        if not code:
            raise AuthCancelled("Authorization response did not include a code")

        token = await self.exchanger.exchange(code, session.code_verifier)
        session.access_token = token.access_token
        session.code_verifier = None
        return session

    def _close_window(self) -> None:
        if self._window is not None and not self._window.closed:
            self._window.close()
        self._window = None

    def close(self) -> None:
        """Abort any pending handshake and close its window."""
        if self._pending is not None and not self._pending.done():
            self._pending.set_exception(AuthCancelled("Authentication aborted"))
        self._close_window()
