"""Configuration management for webapps-deploy."""

from typing import Any, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from webapps_deploy.core.exceptions import ConfigurationError
from webapps_deploy.core.models import PlatformEndpoints, ReadinessMode, TargetDescriptor


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_PROCESS_CHECK_COMMAND = (
    'powershell -NoProfile -NonInteractive -Command '
    '"if (Get-Process -Name \'{process_name}\' -ErrorAction SilentlyContinue) '
    '{{ exit 1 }} else {{ exit 0 }}"'
)


class Settings(BaseSettings):
    """Tool configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Observability
    log_level: str = Field("INFO", description="Log level")
    log_format: str = Field("json", description="json or console")

    # Platform endpoints
    login_host: str = Field("login.microsoftonline.com", description="Identity provider host")
    management_host: str = Field("management.azure.com", description="Management API host")
    management_resource: str = Field(
        "https://management.azure.com/",
        description="Resource requested in the token exchange",
    )
    provider: str = Field("Microsoft.Web", description="Resource provider namespace")
    api_version: str = Field("2016-03-01", description="Management API version")
    scm_host: str = Field("scm.azurewebsites.net", description="Deployment (Kudu) host suffix")
    public_host: str = Field("azurewebsites.net", description="Public site host suffix")

    # Timeouts and polling
    request_timeout_seconds: float = Field(100.0, description="Per-request HTTP timeout")
    poll_interval_seconds: float = Field(1.0, description="Delay between readiness polls")
    wait_timeout_seconds: float = Field(
        600.0,
        description="Deadline for the stop confirmation; 0 waits indefinitely",
    )

    # Readiness
    readiness_mode: ReadinessMode = Field(ReadinessMode.BASIC, description="Stop confirmation predicate set")
    process_name: str = Field("dotnet", description="Host process that must be gone before upload")
    process_check_command: str = Field(
        DEFAULT_PROCESS_CHECK_COMMAND,
        description="Remote command that exits 0 when {process_name} is not running",
    )

    # Upload
    upload_lock_retries: int = Field(0, description="Retries when the upload hits a locked file")
    upload_lock_retry_delay_seconds: float = Field(5.0, description="Delay before a locked-file retry")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got: {v}")
        return v

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "console"):
            raise ValueError(f"log_format must be 'json' or 'console', got: {v}")
        return v

    @field_validator("poll_interval_seconds", "wait_timeout_seconds", "upload_lock_retry_delay_seconds")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"must be >= 0, got: {v}")
        return v

    @field_validator("upload_lock_retries")
    @classmethod
    def _non_negative_int(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"must be >= 0, got: {v}")
        return v

    @property
    def wait_timeout(self) -> Optional[float]:
        """Deadline for readiness polling, None when waiting indefinitely."""
        return self.wait_timeout_seconds or None

    def endpoints(self) -> PlatformEndpoints:
        return PlatformEndpoints(
            login_host=self.login_host,
            management_host=self.management_host,
            management_resource=self.management_resource,
            provider=self.provider,
            api_version=self.api_version,
            scm_host=self.scm_host,
            public_host=self.public_host,
        )


class TargetSettings(BaseSettings):
    """Target Web App and service principal, read from AZURE_* variables.

    Environment variables:
        AZURE_TENANT_ID, AZURE_CLIENT_ID, AZURE_CLIENT_SECRET,
        AZURE_SUBSCRIPTION_ID, AZURE_RESOURCE_GROUP, AZURE_WEBAPP,
        AZURE_DEPLOY_PATH
    """

    model_config = SettingsConfigDict(
        env_prefix="AZURE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = Field("", repr=False)
    subscription_id: str = ""
    resource_group: str = ""
    webapp: str = ""
    deploy_path: str = ""

    def to_target(self, **overrides: Any) -> TargetDescriptor:
        """Build a validated target, applying non-None overrides first.

        Secrets should come from the environment; overrides are meant for
        non-sensitive fields such as the resource group or deploy path.

        Raises:
            ConfigurationError: listing every missing or invalid field
        """
        values = {
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "subscription_id": self.subscription_id,
            "resource_group": self.resource_group,
            "web_app_name": self.webapp,
            "deploy_path": self.deploy_path,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return TargetDescriptor(**values)
        except ValidationError as exc:
            errors = [err["msg"].removeprefix("Value error, ") for err in exc.errors()]
            raise ConfigurationError("Invalid deployment target configuration", errors=errors) from exc


def load_target(**overrides: Any) -> TargetDescriptor:
    """Read the target from the environment and validate it."""
    return TargetSettings().to_target(**overrides)
