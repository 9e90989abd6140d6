"""Core data models for webapps-deploy."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SiteAction(str, Enum):
    """Management-plane actions that can be invoked on a site."""

    START = "start"
    STOP = "stop"
    PUBLISHXML = "publishxml"


class WebJobAction(str, Enum):
    START = "start"
    STOP = "stop"


class ReadinessMode(str, Enum):
    """Standard predicate sets used to confirm a stop."""

    BASIC = "basic"        # Public endpoint reports the site as disabled
    PROCESS = "process"    # Site disabled and host process gone


class DeploymentStep(str, Enum):
    ACQUIRE_CREDENTIALS = "acquire_credentials"
    STOP = "stop"
    WAIT_STOPPED = "wait_stopped"
    UPLOAD = "upload"
    START = "start"


class DeploymentState(str, Enum):
    INIT = "init"
    CREDENTIALS_ACQUIRED = "credentials_acquired"
    STOPPING = "stopping"
    STOPPED = "stopped"          # Stop confirmed by readiness predicates
    UPLOADED = "uploaded"
    STARTED = "started"
    DONE = "done"
    FAILED = "failed"


_REQUIRED_FIELDS = {
    "tenant_id": "tenant id",
    "client_id": "client id",
    "client_secret": "client secret",
    "subscription_id": "subscription id",
    "resource_group": "resource group",
    "web_app_name": "WebApp name",
}


class TargetDescriptor(BaseModel):
    """Identifies one deployable Web App and the service principal used for it."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    client_id: str
    client_secret: str = Field(repr=False)
    subscription_id: str
    resource_group: str
    web_app_name: str
    deploy_path: str = ""

    @field_validator(*_REQUIRED_FIELDS.keys(), mode="before")
    @classmethod
    def _require_value(cls, v: Any, info) -> str:
        if v is None or not str(v).strip():
            raise ValueError(f"You must specify {_REQUIRED_FIELDS[info.field_name]}")
        # Secrets are passed through verbatim
        if info.field_name == "client_secret":
            return str(v)
        return str(v).strip()

    @field_validator("deploy_path", mode="before")
    @classmethod
    def _normalize_deploy_path(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip().strip("/")

    @property
    def identity(self) -> str:
        """Key that ties credentials to this target."""
        return f"{self.subscription_id}/{self.resource_group}/{self.web_app_name}".lower()


class ManagementToken(BaseModel):
    """Bearer token for the management plane."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(repr=False)
    expires_on: Optional[datetime] = None
    issued_for: str


class DeploymentCredentials(BaseModel):
    """Basic-auth credentials for the deployment plane, derived from the publish profile."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: str = Field(repr=False)


class AccessCredentials(BaseModel):
    model_config = ConfigDict(frozen=True)

    management: ManagementToken
    deployment: DeploymentCredentials


class DeploymentSession(BaseModel):
    """A target paired with credentials acquired for it. Never persisted."""

    model_config = ConfigDict(frozen=True)

    target: TargetDescriptor
    credentials: AccessCredentials

    @model_validator(mode="after")
    def _credentials_match_target(self) -> "DeploymentSession":
        if self.credentials.management.issued_for != self.target.identity:
            raise ValueError(
                f"Credentials were issued for '{self.credentials.management.issued_for}', "
                f"not for '{self.target.identity}'"
            )
        return self

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        expires_on = self.credentials.management.expires_on
        if expires_on is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= expires_on


class RemoteCommandResult(BaseModel):
    """Result of a command executed on the deployment plane."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    output: str = Field("", alias="Output")
    error: str = Field("", alias="Error")
    exit_code: int = Field(..., alias="ExitCode")

    @field_validator("output", "error", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> str:
        return "" if v is None else v


class PlatformEndpoints(BaseModel):
    """Hosts and templates for every remote endpoint."""

    model_config = ConfigDict(frozen=True)

    login_host: str = "login.microsoftonline.com"
    management_host: str = "management.azure.com"
    management_resource: str = "https://management.azure.com/"
    provider: str = "Microsoft.Web"
    api_version: str = "2016-03-01"
    scm_host: str = "scm.azurewebsites.net"
    public_host: str = "azurewebsites.net"

    def token_url(self, target: TargetDescriptor) -> str:
        return f"https://{self.login_host}/{target.tenant_id}/oauth2/token"

    def site_action_url(self, target: TargetDescriptor, action: SiteAction) -> str:
        return (
            f"https://{self.management_host}/subscriptions/{target.subscription_id}"
            f"/resourcegroups/{target.resource_group}/providers/{self.provider}"
            f"/sites/{target.web_app_name}/{action.value}?api-version={self.api_version}"
        )

    def scm_url(self, target: TargetDescriptor, path: str) -> str:
        return f"https://{target.web_app_name}.{self.scm_host}/api/{path}"

    def zip_url(self, target: TargetDescriptor) -> str:
        return self.scm_url(target, f"zip/{target.deploy_path}")

    def command_url(self, target: TargetDescriptor) -> str:
        return self.scm_url(target, "command")

    def webjob_url(self, target: TargetDescriptor, name: str, action: WebJobAction) -> str:
        return self.scm_url(target, f"continuouswebjobs/{name}/{action.value}")

    def public_url(self, target: TargetDescriptor) -> str:
        return f"https://{target.web_app_name}.{self.public_host}/"


class DeploymentReport(BaseModel):
    """Summary of a finished deployment run."""

    web_app_name: str
    state: DeploymentState = DeploymentState.INIT
    bundle_size: Optional[int] = None
    poll_iterations: int = 0
    upload_attempts: int = 0
    steps_ms: Dict[str, float] = Field(default_factory=dict)
    total_ms: Optional[float] = None
