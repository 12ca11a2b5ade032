"""
OAuth (PKCE) authentication against the Hub.
"""

from .storage import StorageBackend, MemoryStorage, EncryptedFileStorage
from .pkce import PkceSecrets, PkceStore, AuthorizationRequest, build_authorization_url
from .messages import MessageChannel, WindowMessage
from .window import (
    AuthWindow,
    WindowOpener,
    BrowserWindowOpener,
    WindowGeometry,
    PopupFeatures,
    popup_features,
)
from .exchange import TokenExchanger, TokenResponse
from .handshake import (
    AuthSession,
    OAuthHandshakeCoordinator,
    CALLBACK_STORAGE_KEY,
    generate_state,
    unwrap_state,
    verify_state,
)
from .callback_server import CallbackServer, create_callback_app

__all__ = [
    # Storage
    "StorageBackend",
    "MemoryStorage",
    "EncryptedFileStorage",
    # PKCE
    "PkceSecrets",
    "PkceStore",
    "AuthorizationRequest",
    "build_authorization_url",
    # Channels and windows
    "MessageChannel",
    "WindowMessage",
    "AuthWindow",
    "WindowOpener",
    "BrowserWindowOpener",
    "WindowGeometry",
    "PopupFeatures",
    "popup_features",
    # Exchange
    "TokenExchanger",
    "TokenResponse",
    # Handshake
    "AuthSession",
    "OAuthHandshakeCoordinator",
    "CALLBACK_STORAGE_KEY",
    "generate_state",
    "unwrap_state",
    "verify_state",
    # Redirect target
    "CallbackServer",
    "create_callback_app",
]
