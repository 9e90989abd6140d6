"""
Tests for the deployment-plane (Kudu) client.
"""

import base64
import json

import httpx
import pytest

from conftest import COMMAND_URL, ZIP_URL

from webapps_deploy.core.exceptions import FileLockedError, TransferUnexpectedError
from webapps_deploy.deploy.kudu import KuduClient, basic_auth_header


@pytest.fixture
def kudu(http_client):
    return KuduClient(http_client=http_client)


def test_basic_auth_header(session):
    expected = "Basic " + base64.b64encode(b"deployer:secret").decode()
    assert basic_auth_header(session.credentials.deployment) == expected


def test_upload_ten_byte_bundle(fake_azure, kudu, session):
    fake_azure.add("PUT", ZIP_URL)

    kudu.upload_bundle(session, b"0123456789")

    assert len(fake_azure.requests) == 1
    request = fake_azure.requests[0]
    assert request.method == "PUT"
    assert str(request.url).endswith("/api/zip/site/wwwroot")
    assert request.headers["authorization"] == "Basic " + base64.b64encode(b"deployer:secret").decode()
    assert request.content == b"0123456789"


def test_upload_never_sends_bearer_token(fake_azure, kudu, session):
    fake_azure.add("PUT", ZIP_URL)

    kudu.upload_bundle(session, b"zip")

    assert "tok-123" not in fake_azure.requests[0].headers["authorization"]


def test_upload_locked_file(fake_azure, kudu, session):
    fake_azure.add(
        "PUT",
        ZIP_URL,
        500,
        text="The process cannot access the file 'D:\\home\\site\\wwwroot\\app.dll' "
        "because it is being used by another process.",
    )

    with pytest.raises(FileLockedError) as exc_info:
        kudu.upload_bundle(session, b"zip")

    assert exc_info.value.status_code == 500
    assert exc_info.value.code == "LOCKED"


def test_upload_other_server_error_is_not_lock(fake_azure, kudu, session):
    fake_azure.add("PUT", ZIP_URL, 500, text="Unexpected failure while extracting archive")

    with pytest.raises(TransferUnexpectedError) as exc_info:
        kudu.upload_bundle(session, b"zip")

    assert not isinstance(exc_info.value, FileLockedError)
    assert exc_info.value.status_code == 500


def test_upload_lock_text_on_client_error_is_not_lock(fake_azure, kudu, session):
    fake_azure.add("PUT", ZIP_URL, 409, text="file is locked")

    with pytest.raises(TransferUnexpectedError):
        kudu.upload_bundle(session, b"zip")


def test_upload_does_not_retry(fake_azure, kudu, session):
    fake_azure.add("PUT", ZIP_URL, 500, text="file is locked")

    with pytest.raises(FileLockedError):
        kudu.upload_bundle(session, b"zip")

    assert len(fake_azure.calls("PUT", ZIP_URL)) == 1


def test_upload_transport_error(fake_azure, kudu, session):
    fake_azure.add_error("PUT", ZIP_URL, httpx.ConnectError("refused"))

    with pytest.raises(TransferUnexpectedError) as exc_info:
        kudu.upload_bundle(session, b"zip")

    assert exc_info.value.status_code is None


def test_run_command(fake_azure, kudu, session):
    fake_azure.add("POST", COMMAND_URL, json={"Output": "ok", "Error": "", "ExitCode": 0})

    result = kudu.run_command(session, "cmd /c echo ok", "site\\wwwroot")

    request = fake_azure.calls("POST", COMMAND_URL)[0]
    assert json.loads(request.content) == {"command": "cmd /c echo ok", "dir": "site\\wwwroot"}
    assert request.headers["authorization"].startswith("Basic ")
    assert result.output == "ok"
    assert result.exit_code == 0


def test_run_command_bad_json(fake_azure, kudu, session):
    fake_azure.add("POST", COMMAND_URL, text="not json")

    with pytest.raises(TransferUnexpectedError):
        kudu.run_command(session, "whoami")


def test_run_command_missing_exit_code(fake_azure, kudu, session):
    fake_azure.add("POST", COMMAND_URL, json={"Output": "ok"})

    with pytest.raises(TransferUnexpectedError):
        kudu.run_command(session, "whoami")


def test_run_command_http_error(fake_azure, kudu, session):
    fake_azure.add("POST", COMMAND_URL, 401)

    with pytest.raises(TransferUnexpectedError) as exc_info:
        kudu.run_command(session, "whoami")

    assert exc_info.value.status_code == 401


def test_webjob_start_and_stop(fake_azure, kudu, session):
    start_url = "https://contoso.scm.azurewebsites.net/api/continuouswebjobs/worker/start"
    stop_url = "https://contoso.scm.azurewebsites.net/api/continuouswebjobs/worker/stop"
    fake_azure.add("POST", start_url)
    fake_azure.add("POST", stop_url)

    kudu.stop_webjob(session, "worker")
    kudu.start_webjob(session, "worker")

    assert [str(r.url) for r in fake_azure.requests] == [stop_url, start_url]


def test_webjob_failure(fake_azure, kudu, session):
    fake_azure.add("POST", "https://contoso.scm.azurewebsites.net/api/continuouswebjobs/worker/stop", 404)

    with pytest.raises(TransferUnexpectedError):
        kudu.webjob(session, "worker", "stop")
