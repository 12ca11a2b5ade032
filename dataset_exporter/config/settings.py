"""
Configuration dataclasses for Dataset Exporter.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List
from urllib.parse import urlsplit

DEFAULT_HUB_ENDPOINT = "https://huggingface.co"
DEFAULT_REDIRECT_URI = "http://localhost:8000/oauth/callback"
DEFAULT_OAUTH_SCOPES = "openid profile email read-repos write-repos manage-repos"
DEFAULT_DEV_ORIGINS = [
    "http://localhost:8000",
    "http://127.0.0.1:8000",
    "https://localhost:8000",
    "https://127.0.0.1:8000",
]


class LogLevel(Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def url_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` for a URL."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


@dataclass
class OAuthConfig:
    """OAuth (PKCE) settings for the Hub."""
    client_id: str = ""
    hub_endpoint: str = DEFAULT_HUB_ENDPOINT
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scopes: str = DEFAULT_OAUTH_SCOPES
    timeout_seconds: float = 300.0
    popup_check_interval_ms: int = 1000
    fallback_grace_ms: int = 500
    dev_origins: List[str] = field(default_factory=lambda: list(DEFAULT_DEV_ORIGINS))
    caller_origin: str = ""

    @property
    def redirect_origin(self) -> str:
        return url_origin(self.redirect_uri)

    @property
    def authorize_url(self) -> str:
        return f"{self.hub_endpoint.rstrip('/')}/oauth/authorize"

    @property
    def token_url(self) -> str:
        return f"{self.hub_endpoint.rstrip('/')}/oauth/token"

    def allowed_origins(self) -> List[str]:
        """Origins whose window messages are accepted."""
        origins = [self.redirect_origin, self.caller_origin or self.redirect_origin]
        origins.extend(self.dev_origins)
        return list(dict.fromkeys(origins))


@dataclass
class ExportApiConfig:
    """Backend export service settings."""
    submit_url: str = ""
    source_api_url: str = ""
    poll_interval_ms: int = 5000

    @property
    def base_url(self) -> str:
        """Submit URL with a trailing ``/submit`` removed."""
        url = self.submit_url.rstrip("/")
        if url.endswith("/submit"):
            url = url[: -len("/submit")]
        return url


@dataclass
class PublishConfig:
    """Dataset repository settings."""
    license: str = "cc0-1.0"
    description: str = "Dataset exported from RNAcentral"


@dataclass
class RetryConfig:
    """Workflow retry settings."""
    max_retries: int = 3


@dataclass
class StorageConfig:
    """Local encrypted storage for PKCE secrets and the callback fallback."""
    path: Path = field(default_factory=lambda: Path.home() / ".dataset-exporter")
    encryption_key: str = ""


@dataclass
class ExporterConfig:
    """Top-level configuration."""
    oauth: OAuthConfig = field(default_factory=OAuthConfig)
    export_api: ExportApiConfig = field(default_factory=ExportApiConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log_level: LogLevel = LogLevel.INFO

    @property
    def callback_host(self) -> str:
        return urlsplit(self.oauth.redirect_uri).hostname or "127.0.0.1"

    @property
    def callback_port(self) -> int:
        parts = urlsplit(self.oauth.redirect_uri)
        if parts.port:
            return parts.port
        return 443 if parts.scheme == "https" else 80

    @property
    def callback_path(self) -> str:
        return urlsplit(self.oauth.redirect_uri).path or "/"
