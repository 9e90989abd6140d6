"""Credential provider: service principal -> bearer token -> publish profile credentials."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import structlog

from webapps_deploy.core.exceptions import (
    MalformedPublishProfileError,
    NoMatchingPublishProfileError,
    TokenExchangeError,
)
from webapps_deploy.core.models import (
    AccessCredentials,
    DeploymentCredentials,
    DeploymentSession,
    ManagementToken,
    PlatformEndpoints,
    SiteAction,
    TargetDescriptor,
)
from webapps_deploy.deploy.management import ManagementClient


logger = structlog.get_logger()

PUBLISH_METHOD = "FTP"


def derive_deploy_username(user_name: str) -> str:
    """Return the part of a `site\\user` publish username after the first backslash."""
    _, sep, user = user_name.partition("\\")
    if not sep or not user:
        raise MalformedPublishProfileError(
            f"Publish profile username '{user_name}' is not of the form site\\user"
        )
    return user


def select_publish_credentials(document: str, method: str = PUBLISH_METHOD) -> DeploymentCredentials:
    """Pick the deployment credentials from a publish profile XML document.

    Only the entry whose publishMethod equals `method` is considered.
    """
    try:
        root = ET.fromstring(document.encode("utf-8"))
    except ET.ParseError as exc:
        raise MalformedPublishProfileError(f"Publish profile is not valid XML: {exc}") from exc

    for profile in root.iter("publishProfile"):
        if profile.get("publishMethod") != method:
            continue
        user_name = profile.get("userName")
        password = profile.get("userPWD")
        if user_name is None or password is None:
            raise MalformedPublishProfileError(
                f"Publish profile entry '{method}' lacks userName or userPWD"
            )
        return DeploymentCredentials(username=derive_deploy_username(user_name), password=password)

    raise NoMatchingPublishProfileError(f"No publish profile with method '{method}' found")


def _parse_expiry(payload: dict) -> Optional[datetime]:
    expires_on = payload.get("expires_on")
    if expires_on not in (None, ""):
        try:
            return datetime.fromtimestamp(int(expires_on), tz=timezone.utc)
        except (TypeError, ValueError):
            pass
    expires_in = payload.get("expires_in")
    if expires_in not in (None, ""):
        try:
            return datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
        except (TypeError, ValueError):
            pass
    return None


class CredentialProvider:
    """Acquires a management token and deployment credentials for a target."""

    def __init__(
        self,
        management: ManagementClient,
        endpoints: Optional[PlatformEndpoints] = None,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 100.0,
    ):
        self.management = management
        self.endpoints = endpoints or management.endpoints
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def acquire_token(self, target: TargetDescriptor) -> ManagementToken:
        """Exchange the service principal secret for a management-plane bearer token."""
        url = self.endpoints.token_url(target)
        form = {
            "resource": self.endpoints.management_resource,
            "grant_type": "client_credentials",
            "client_id": target.client_id,
            "client_secret": target.client_secret,
        }
        try:
            response = self._client.post(url, data=form)
        except httpx.HTTPError as exc:
            raise TokenExchangeError(f"Token request failed: {exc}") from exc

        if not response.is_success:
            raise TokenExchangeError(
                f"Token endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TokenExchangeError("Token response is not valid JSON", status_code=response.status_code) from exc

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise TokenExchangeError("Token response has no access_token", status_code=response.status_code)

        logger.debug("Access token acquired successfully")
        return ManagementToken(
            access_token=access_token,
            expires_on=_parse_expiry(payload),
            issued_for=target.identity,
        )

    def acquire_deployment_credentials(
        self, target: TargetDescriptor, token: ManagementToken
    ) -> DeploymentCredentials:
        document = self.management.invoke_with_token(target, token, "POST", SiteAction.PUBLISHXML)
        credentials = select_publish_credentials(document)
        logger.debug("Deployment credentials acquired", deploy_user=credentials.username)
        return credentials

    def acquire_credentials(self, target: TargetDescriptor) -> DeploymentSession:
        """Acquire the access token and the deployment credentials for the Web App.

        No retries are made here; the token exchange itself is safe to repeat.
        """
        token = self.acquire_token(target)
        deployment = self.acquire_deployment_credentials(target, token)
        return DeploymentSession(
            target=target,
            credentials=AccessCredentials(management=token, deployment=deployment),
        )
