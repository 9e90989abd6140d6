"""Management-plane client: start/stop/publishxml actions on a Web App."""

from __future__ import annotations

from typing import Optional, Union

import httpx
import structlog

from webapps_deploy.core.exceptions import (
    ControlPlaneNotFoundError,
    ControlPlaneUnauthorizedError,
    ControlPlaneUnexpectedError,
)
from webapps_deploy.core.models import (
    DeploymentSession,
    ManagementToken,
    PlatformEndpoints,
    SiteAction,
    TargetDescriptor,
)


logger = structlog.get_logger()


def _raise_for_status(response: httpx.Response, action: SiteAction, web_app: str) -> None:
    status = response.status_code
    if 200 <= status < 300:
        return
    message = f"Action '{action.value}' on WebApp '{web_app}' failed with HTTP {status}"
    if status in (401, 403):
        raise ControlPlaneUnauthorizedError(message, status_code=status)
    if status == 404:
        raise ControlPlaneNotFoundError(message, status_code=status)
    raise ControlPlaneUnexpectedError(message, status_code=status)


class ManagementClient:
    """Calls site actions on the management API with a bearer token."""

    def __init__(
        self,
        endpoints: Optional[PlatformEndpoints] = None,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 100.0,
    ):
        self.endpoints = endpoints or PlatformEndpoints()
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "ManagementClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def invoke(self, session: DeploymentSession, verb: str, action: Union[SiteAction, str]) -> str:
        """Invoke a site action and return the response body."""
        return self.invoke_with_token(session.target, session.credentials.management, verb, action)

    def invoke_with_token(
        self,
        target: TargetDescriptor,
        token: ManagementToken,
        verb: str,
        action: Union[SiteAction, str],
    ) -> str:
        """Invoke a site action with an explicit token.

        GET requests carry no body; every other verb sends an empty body.

        Raises:
            ValueError: if action is not a known SiteAction
            ControlPlaneUnauthorizedError: on 401/403
            ControlPlaneNotFoundError: on 404
            ControlPlaneUnexpectedError: on any other failure
        """
        action = SiteAction(action)
        verb = verb.upper()
        url = self.endpoints.site_action_url(target, action)
        headers = {"Authorization": f"Bearer {token.access_token}"}

        logger.debug("Calling WebApp action", action=action.value, verb=verb, webApp=target.web_app_name)
        try:
            if verb == "GET":
                response = self._client.request(verb, url, headers=headers)
            else:
                response = self._client.request(verb, url, headers=headers, content=b"")
        except httpx.HTTPError as exc:
            raise ControlPlaneUnexpectedError(
                f"Action '{action.value}' on WebApp '{target.web_app_name}' failed: {exc}"
            ) from exc

        _raise_for_status(response, action, target.web_app_name)
        logger.debug(
            "WebApp action finished successfully",
            action=action.value,
            webApp=target.web_app_name,
            status=response.status_code,
        )
        return response.text

    def start(self, session: DeploymentSession) -> None:
        self.invoke(session, "POST", SiteAction.START)

    def stop(self, session: DeploymentSession) -> None:
        """Request a stop. The platform completes the transition asynchronously."""
        self.invoke(session, "POST", SiteAction.STOP)

    def publish_profile(self, session: DeploymentSession) -> str:
        return self.invoke(session, "POST", SiteAction.PUBLISHXML)
