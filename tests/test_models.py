"""
Tests for the core data model.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from webapps_deploy.core.models import (
    AccessCredentials,
    DeploymentCredentials,
    DeploymentSession,
    ManagementToken,
    PlatformEndpoints,
    RemoteCommandResult,
    SiteAction,
    TargetDescriptor,
)


def _target(**overrides):
    values = dict(
        tenant_id="tenant-1",
        client_id="client-1",
        client_secret="sp-secret",
        subscription_id="sub-1",
        resource_group="rg-1",
        web_app_name="contoso",
    )
    values.update(overrides)
    return TargetDescriptor(**values)


def test_target_deploy_path_defaults_to_empty():
    target = _target()
    assert target.deploy_path == ""


def test_target_deploy_path_none_becomes_empty():
    target = _target(deploy_path=None)
    assert target.deploy_path == ""


def test_target_deploy_path_slashes_stripped():
    target = _target(deploy_path="/site/wwwroot/")
    assert target.deploy_path == "site/wwwroot"


@pytest.mark.parametrize(
    "field,message",
    [
        ("tenant_id", "You must specify tenant id"),
        ("client_id", "You must specify client id"),
        ("client_secret", "You must specify client secret"),
        ("subscription_id", "You must specify subscription id"),
        ("resource_group", "You must specify resource group"),
        ("web_app_name", "You must specify WebApp name"),
    ],
)
def test_target_mandatory_fields(field, message):
    with pytest.raises(ValidationError) as exc_info:
        _target(**{field: "   "})
    assert message in str(exc_info.value)


def test_target_keeps_client_secret_verbatim():
    target = _target(client_secret=" s3cret ", web_app_name=" contoso ")
    assert target.client_secret == " s3cret "
    assert target.web_app_name == "contoso"


def test_target_is_immutable():
    target = _target()
    with pytest.raises(ValidationError):
        target.web_app_name = "other"


def test_target_repr_hides_secret():
    assert "sp-secret" not in repr(_target())


def test_session_rejects_credentials_for_other_target(session):
    other = _target(web_app_name="fabrikam")
    with pytest.raises(ValidationError) as exc_info:
        DeploymentSession(target=other, credentials=session.credentials)
    assert "issued for" in str(exc_info.value)


def test_session_expiry(target):
    past = datetime.now(timezone.utc) - timedelta(minutes=1)
    session = DeploymentSession(
        target=target,
        credentials=AccessCredentials(
            management=ManagementToken(access_token="t", expires_on=past, issued_for=target.identity),
            deployment=DeploymentCredentials(username="u", password="p"),
        ),
    )
    assert session.is_expired() is True


def test_session_without_expiry_never_expires(session):
    assert session.is_expired() is False


def test_remote_command_result_from_json():
    result = RemoteCommandResult.model_validate({"Output": "ok", "Error": "", "ExitCode": 0})
    assert result.output == "ok"
    assert result.error == ""
    assert result.exit_code == 0


def test_remote_command_result_null_streams():
    result = RemoteCommandResult.model_validate({"Output": None, "Error": None, "ExitCode": 3})
    assert result.output == ""
    assert result.exit_code == 3


def test_site_action_is_closed():
    with pytest.raises(ValueError):
        SiteAction("restart")


def test_endpoint_urls(target):
    endpoints = PlatformEndpoints()
    assert endpoints.zip_url(target) == "https://contoso.scm.azurewebsites.net/api/zip/site/wwwroot"
    assert endpoints.zip_url(_target()) == "https://contoso.scm.azurewebsites.net/api/zip/"
    assert endpoints.public_url(target) == "https://contoso.azurewebsites.net/"
    assert endpoints.site_action_url(target, SiteAction.STOP) == (
        "https://management.azure.com/subscriptions/sub-1/resourcegroups/rg-1"
        "/providers/Microsoft.Web/sites/contoso/stop?api-version=2016-03-01"
    )
