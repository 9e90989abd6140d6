"""
Deployment primitives.

- CredentialProvider: service principal -> bearer token -> publish profile credentials
- ManagementClient: start/stop/publishxml site actions (bearer auth)
- KuduClient: ZIP upload, remote commands, WebJobs (Basic auth)
- ReadinessProber: polls predicates until a stop has taken effect
- DeploymentOrchestrator: the full stop -> upload -> start workflow
"""

from .credentials import CredentialProvider, derive_deploy_username, select_publish_credentials
from .kudu import KuduClient
from .management import ManagementClient
from .orchestrator import DeploymentOrchestrator
from .readiness import (
    ProcessAbsentPredicate,
    PublicSiteProbe,
    ReadinessPredicate,
    ReadinessProber,
    SiteDisabledPredicate,
    basic_stop_confirmation,
    predicates_for_mode,
    process_drain_confirmation,
)

__all__ = [
    "CredentialProvider",
    "derive_deploy_username",
    "select_publish_credentials",
    "KuduClient",
    "ManagementClient",
    "DeploymentOrchestrator",
    "ReadinessPredicate",
    "ReadinessProber",
    "PublicSiteProbe",
    "SiteDisabledPredicate",
    "ProcessAbsentPredicate",
    "basic_stop_confirmation",
    "process_drain_confirmation",
    "predicates_for_mode",
]
