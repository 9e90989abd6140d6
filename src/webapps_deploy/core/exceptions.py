"""Custom exceptions for webapps-deploy."""

from typing import Any, Optional


class WebAppsDeployError(Exception):
    """Base exception for all deployment errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class ConfigurationError(WebAppsDeployError):
    """Configuration error."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message, code="CONFIGURATION_INVALID")
        self.errors = errors or []


class AuthError(WebAppsDeployError):
    """Credential acquisition failed."""
    pass


class TokenExchangeError(AuthError):
    """Client-credentials token exchange failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, code="TOKEN_EXCHANGE_FAILED")
        self.status_code = status_code


class NoMatchingPublishProfileError(AuthError):
    """Publish profile has no entry for the expected publish method."""

    def __init__(self, message: str):
        super().__init__(message, code="NO_MATCHING_PUBLISH_PROFILE")


class MalformedPublishProfileError(AuthError):
    """Publish profile document or entry cannot be used."""

    def __init__(self, message: str):
        super().__init__(message, code="MALFORMED_PUBLISH_PROFILE")


class CredentialsExpiredError(AuthError):
    """Session credentials are past their expiry; acquire new ones."""

    def __init__(self, message: str):
        super().__init__(message, code="CREDENTIALS_EXPIRED")


class ControlPlaneError(WebAppsDeployError):
    """Management-plane call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message, code=code)
        self.status_code = status_code


class ControlPlaneUnauthorizedError(ControlPlaneError):
    """Management plane rejected the bearer token (401/403)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code, code="UNAUTHORIZED")


class ControlPlaneNotFoundError(ControlPlaneError):
    """Site or action not found (404)."""

    def __init__(self, message: str, status_code: Optional[int] = 404):
        super().__init__(message, status_code=status_code, code="NOT_FOUND")


class ControlPlaneUnexpectedError(ControlPlaneError):
    """Any other non-success response or transport failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code, code="UNEXPECTED")


class TransferError(WebAppsDeployError):
    """Deployment-plane call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message, code=code)
        self.status_code = status_code


class FileLockedError(TransferError):
    """Remote side still holds a handle on a file being overwritten.

    This is transient; callers may retry the upload after a short delay.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code, code="LOCKED")


class TransferUnexpectedError(TransferError):
    """Any other non-success response or transport failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code, code="UNEXPECTED")


class DeploymentError(WebAppsDeployError):
    """Deployment run failed.

    Attributes:
        report: DeploymentReport of the run up to the failure, when the
            error comes out of a full deployment run
    """

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message, code=code)
        self.report = None


class DeploymentStepError(DeploymentError):
    """A single orchestration step failed.

    Attributes:
        step: The step that failed
        cause: The error raised by the step
        remote_state: What is known about the site after the failure
    """

    def __init__(self, step: Any, cause: BaseException, remote_state: str):
        step_name = getattr(step, "value", step)
        super().__init__(
            f"Step '{step_name}' failed: {cause} (remote state: {remote_state})",
            code="STEP_FAILED",
        )
        self.step = step
        self.cause = cause
        self.remote_state = remote_state


class SiteLeftStoppedError(DeploymentStepError):
    """Start failed after a successful upload; the site is still stopped."""
    pass


class DeploymentTimeoutError(DeploymentError):
    """Waiting for the site to stop hit the deadline or was cancelled.

    The stop has already been requested when this is raised, so the site is
    stopped or stopping and has not been restarted.
    """

    def __init__(
        self,
        message: str,
        step: Any = None,
        cancelled: bool = False,
        remote_state: Optional[str] = None,
    ):
        super().__init__(message, code="CANCELLED" if cancelled else "TIMEOUT")
        self.step = step
        self.cancelled = cancelled
        self.remote_state = remote_state
