"""
Pytest configuration and fixtures for webapps-deploy tests.

Remote endpoints are faked with httpx.MockTransport through FakeAzure, which
records every request and answers from per-URL response queues.
"""

import sys
from pathlib import Path
from typing import Callable, Dict, List, Tuple

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from webapps_deploy.core.models import (  # noqa: E402
    AccessCredentials,
    DeploymentCredentials,
    DeploymentSession,
    ManagementToken,
    PlatformEndpoints,
    TargetDescriptor,
)


ENDPOINTS = PlatformEndpoints()

TOKEN_URL = "https://login.microsoftonline.com/tenant-1/oauth2/token"
SITE_URL = (
    "https://management.azure.com/subscriptions/sub-1/resourcegroups/rg-1"
    "/providers/Microsoft.Web/sites/contoso"
)
STOP_URL = f"{SITE_URL}/stop?api-version=2016-03-01"
START_URL = f"{SITE_URL}/start?api-version=2016-03-01"
PUBLISHXML_URL = f"{SITE_URL}/publishxml?api-version=2016-03-01"
ZIP_URL = "https://contoso.scm.azurewebsites.net/api/zip/site/wwwroot"
COMMAND_URL = "https://contoso.scm.azurewebsites.net/api/command"
PUBLIC_URL = "https://contoso.azurewebsites.net/"

PUBLISH_XML = """<?xml version="1.0" encoding="utf-8"?>
<publishData>
  <publishProfile profileName="contoso - Web Deploy" publishMethod="MSDeploy"
                  userName="$contoso" userPWD="msdeploy-pwd" />
  <publishProfile profileName="contoso - FTP" publishMethod="FTP"
                  userName="contoso\\deployer" userPWD="secret" />
</publishData>
"""

TOKEN_JSON = {
    "token_type": "Bearer",
    "expires_in": "3599",
    "expires_on": "4102444800",
    "resource": "https://management.azure.com/",
    "access_token": "tok-123",
}


class FakeAzure:
    """Routes requests by (method, full URL) to queued response factories.

    When a queue holds a single entry it is reused for every later request.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._routes: Dict[Tuple[str, str], List[Callable[[httpx.Request], httpx.Response]]] = {}

    def add(self, method: str, url: str, status: int = 200, **kwargs) -> "FakeAzure":
        self._routes.setdefault((method, url), []).append(lambda request: httpx.Response(status, **kwargs))
        return self

    def add_error(self, method: str, url: str, exc: Exception) -> "FakeAzure":
        def _raise(request):
            raise exc
        self._routes.setdefault((method, url), []).append(_raise)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._routes.get((request.method, str(request.url)))
        if not queue:
            return httpx.Response(599, text=f"no route for {request.method} {request.url}")
        factory = queue.pop(0) if len(queue) > 1 else queue[0]
        return factory(request)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    def calls(self, method: str, url: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and str(r.url) == url]


@pytest.fixture
def fake_azure() -> FakeAzure:
    return FakeAzure()


@pytest.fixture
def http_client(fake_azure):
    client = fake_azure.client()
    yield client
    client.close()


@pytest.fixture
def target() -> TargetDescriptor:
    return TargetDescriptor(
        tenant_id="tenant-1",
        client_id="client-1",
        client_secret="sp-secret",
        subscription_id="sub-1",
        resource_group="rg-1",
        web_app_name="contoso",
        deploy_path="site/wwwroot",
    )


@pytest.fixture
def session(target) -> DeploymentSession:
    return DeploymentSession(
        target=target,
        credentials=AccessCredentials(
            management=ManagementToken(access_token="tok-123", issued_for=target.identity),
            deployment=DeploymentCredentials(username="deployer", password="secret"),
        ),
    )


@pytest.fixture
def bundle(tmp_path) -> Path:
    path = tmp_path / "deploy.zip"
    path.write_bytes(b"0123456789")
    return path


@pytest.fixture(autouse=True)
def clear_azure_env(monkeypatch):
    """Keep the developer's AZURE_* variables and .env out of the tests."""
    import os
    for key in list(os.environ):
        if key.startswith("AZURE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(Path(__file__).resolve().parent)


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo setup_logging and bound correlation fields between tests."""
    import structlog
    from structlog.contextvars import clear_contextvars
    yield
    clear_contextvars()
    structlog.reset_defaults()
