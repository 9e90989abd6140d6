"""Deployment-plane (Kudu) client: ZIP upload, remote commands and WebJobs.

Authenticates with the Basic credentials from the publish profile, never with
the management-plane bearer token.
"""

from __future__ import annotations

import base64
import re
from typing import Optional, Union

import httpx
import structlog
from pydantic import ValidationError

from webapps_deploy.core.exceptions import FileLockedError, TransferUnexpectedError
from webapps_deploy.core.models import (
    DeploymentCredentials,
    DeploymentSession,
    PlatformEndpoints,
    RemoteCommandResult,
    WebJobAction,
)


logger = structlog.get_logger()

# Kudu answers 500 with one of these when a running process holds a file handle
FILE_LOCK_PATTERN = re.compile(
    r"being used by another process|cannot access the file|file is locked|\blocked\b",
    re.IGNORECASE,
)


def basic_auth_header(credentials: DeploymentCredentials) -> str:
    raw = f"{credentials.username}:{credentials.password}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


def is_file_lock_response(response: httpx.Response) -> bool:
    """True if a server error looks like a locked file on the remote side."""
    if not response.is_server_error:
        return False
    return bool(FILE_LOCK_PATTERN.search(response.text or ""))


class KuduClient:
    """Talks to the per-site deployment endpoint."""

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

    def __enter__(self) -> "KuduClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _headers(self, session: DeploymentSession) -> dict:
        return {"Authorization": basic_auth_header(session.credentials.deployment)}

    def _send(self, method: str, url: str, session: DeploymentSession, what: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, url, headers=self._headers(session), **kwargs)
        except httpx.HTTPError as exc:
            raise TransferUnexpectedError(f"{what} failed: {exc}") from exc

    def upload_bundle(self, session: DeploymentSession, bundle: bytes) -> None:
        """Push a ZIP to the ZIP controller, which extracts it to the deploy path.

        Raises:
            FileLockedError: remote reported a locked file (transient)
            TransferUnexpectedError: any other failure
        """
        target = session.target
        url = self.endpoints.zip_url(target)
        logger.info(
            "Uploading ZIP",
            webApp=target.web_app_name,
            deploy_path=target.deploy_path,
            size=len(bundle),
        )
        response = self._send("PUT", url, session, "ZIP upload", content=bundle)

        if response.is_success:
            logger.info("ZIP uploaded successfully", webApp=target.web_app_name)
            return
        if is_file_lock_response(response):
            raise FileLockedError(
                f"Upload to WebApp '{target.web_app_name}' hit a locked file (HTTP {response.status_code})",
                status_code=response.status_code,
            )
        raise TransferUnexpectedError(
            f"Upload to WebApp '{target.web_app_name}' failed with HTTP {response.status_code}",
            status_code=response.status_code,
        )

    def run_command(
        self, session: DeploymentSession, command: str, working_dir: str = ""
    ) -> RemoteCommandResult:
        """Execute a command on the instance.

        No particular shell is assumed; include the interpreter in `command`
        if one is needed.
        """
        target = session.target
        url = self.endpoints.command_url(target)
        response = self._send("POST", url, session, "Remote command", json={"command": command, "dir": working_dir})
        if not response.is_success:
            raise TransferUnexpectedError(
                f"Remote command on WebApp '{target.web_app_name}' failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            result = RemoteCommandResult.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise TransferUnexpectedError(
                f"Remote command response from WebApp '{target.web_app_name}' could not be decoded",
                status_code=response.status_code,
            ) from exc
        logger.debug("Remote command finished", webApp=target.web_app_name, exit_code=result.exit_code)
        return result

    def webjob(self, session: DeploymentSession, name: str, action: Union[WebJobAction, str]) -> None:
        """Start or stop a continuous WebJob."""
        action = WebJobAction(action)
        target = session.target
        url = self.endpoints.webjob_url(target, name, action)
        response = self._send("POST", url, session, f"WebJob {action.value}", content=b"")
        if not response.is_success:
            raise TransferUnexpectedError(
                f"WebJob '{name}' {action.value} on WebApp '{target.web_app_name}' "
                f"failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        logger.info("WebJob action finished", webApp=target.web_app_name, webjob=name, action=action.value)

    def start_webjob(self, session: DeploymentSession, name: str) -> None:
        self.webjob(session, name, WebJobAction.START)

    def stop_webjob(self, session: DeploymentSession, name: str) -> None:
        self.webjob(session, name, WebJobAction.STOP)
