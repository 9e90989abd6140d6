"""webapps-deploy - Stop, upload and restart Azure Web Apps safely."""

__version__ = "0.1.0"

from webapps_deploy.core.config import Settings, TargetSettings, load_target
from webapps_deploy.core.models import DeploymentReport, DeploymentSession, TargetDescriptor
from webapps_deploy.deploy.orchestrator import DeploymentOrchestrator

__all__ = [
    "Settings",
    "TargetSettings",
    "load_target",
    "TargetDescriptor",
    "DeploymentSession",
    "DeploymentReport",
    "DeploymentOrchestrator",
    "__version__",
]
