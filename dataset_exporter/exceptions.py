"""
Exception hierarchy for Dataset Exporter.

Every error carries a machine-readable code, a context dict for logs and a
user-facing message. Retryable errors are funnelled through the workflow
retry engine; the rest surface to the caller directly.
"""

from typing import Any, Dict, Optional


class ExporterError(Exception):
    """Base class for all exporter errors."""

    retryable: bool = True
    default_code: str = "EXPORTER_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.context = context or {}
        self.user_message = user_message or message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "user_message": self.user_message,
            "retryable": self.retryable,
            "context": self.context,
        }

    def to_log_string(self) -> str:
        """Single-line representation for log output."""
        if self.context:
            details = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"[{self.error_code}] {self.message} ({details})"
        return f"[{self.error_code}] {self.message}"


# =============================================================================
# Non-retryable
# =============================================================================

class ValidationError(ExporterError):
    """Invalid user input, e.g. a malformed dataset name."""
    retryable = False
    default_code = "VALIDATION_ERROR"


class ConfigurationError(ExporterError):
    """Missing or invalid configuration."""
    retryable = False
    default_code = "CONFIGURATION_ERROR"


class WorkflowBusyError(ExporterError):
    """A run was started while another run is still active."""
    retryable = False
    default_code = "WORKFLOW_BUSY"


class WorkflowAborted(ExporterError):
    """The run was torn down; nothing further may be reported."""
    retryable = False
    default_code = "WORKFLOW_ABORTED"


# =============================================================================
# Authentication
# =============================================================================

class AuthError(ExporterError):
    """Base class for OAuth handshake failures."""
    default_code = "AUTH_ERROR"


class AuthCancelled(AuthError):
    default_code = "AUTH_CANCELLED"

    def __init__(self, message: str = "Authentication cancelled", **kwargs):
        super().__init__(message, **kwargs)


class AuthTimeout(AuthError):
    default_code = "AUTH_TIMEOUT"

    def __init__(self, timeout_seconds: float, **kwargs):
        super().__init__(
            "OAuth timeout - please try again",
            context={"timeout_seconds": timeout_seconds},
            **kwargs,
        )
        self.timeout_seconds = timeout_seconds


class AuthStateMismatch(AuthError):
    default_code = "AUTH_STATE_MISMATCH"

    def __init__(self, message: str = "Invalid OAuth state", **kwargs):
        super().__init__(message, **kwargs)


class AuthProviderError(AuthError):
    """The provider redirected back with an ``error`` parameter."""
    default_code = "AUTH_PROVIDER_ERROR"

    def __init__(self, provider_error: str, **kwargs):
        super().__init__(f"OAuth error: {provider_error}", **kwargs)
        self.provider_error = provider_error


class MissingVerifier(AuthError):
    default_code = "PKCE_VERIFIER_MISSING"

    def __init__(self, message: str = "PKCE code_verifier not found", **kwargs):
        super().__init__(message, **kwargs)


class TokenExchangeFailed(AuthError):
    default_code = "TOKEN_EXCHANGE_FAILED"

    def __init__(self, status_code: int, body: str, **kwargs):
        super().__init__(
            f"Token exchange failed ({status_code}): {body}",
            context={"status_code": status_code},
            **kwargs,
        )
        self.status_code = status_code
        self.body = body


class InvalidAccessToken(AuthError):
    default_code = "INVALID_ACCESS_TOKEN"

    def __init__(self, message: str = "Access token rejected by the Hub", **kwargs):
        super().__init__(message, **kwargs)


# =============================================================================
# Export jobs
# =============================================================================

class SubmissionError(ExporterError):
    """One of the two export jobs could not be created."""
    default_code = "SUBMISSION_FAILED"

    def __init__(self, kind: str, message: str, **kwargs):
        super().__init__(message, context={"kind": kind}, **kwargs)
        self.kind = kind


class PollError(ExporterError):
    """Transport or HTTP failure while polling a job."""
    default_code = "POLL_FAILED"

    def __init__(self, kind: str, message: str, **kwargs):
        super().__init__(message, context={"kind": kind}, **kwargs)
        self.kind = kind


# =============================================================================
# Publishing
# =============================================================================

class PublishError(ExporterError):
    """Repository creation or upload failed."""
    default_code = "PUBLISH_FAILED"


class RepositoryAlreadyExists(PublishError):
    """Raised by repository clients; tolerated by the publisher."""
    default_code = "REPOSITORY_EXISTS"

    def __init__(self, repo_id: str, **kwargs):
        super().__init__(
            f"Repository {repo_id} already exists",
            context={"repo_id": repo_id},
            **kwargs,
        )
        self.repo_id = repo_id


def handle_unexpected_error(error: Exception) -> ExporterError:
    """Wrap an arbitrary exception so it can flow through the retry engine."""
    if isinstance(error, ExporterError):
        return error
    return ExporterError(
        str(error) or type(error).__name__,
        error_code="UNEXPECTED_ERROR",
        context={"exception_type": type(error).__name__},
    )
