"""Deployment orchestrator: acquire -> stop -> confirm stopped -> upload -> start.

Steps run strictly in sequence. A failing step aborts the run and is reported
together with what is known about the remote site; nothing is rolled back.
Concurrent runs against the same site must be serialised by the caller.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

import httpx
import structlog

from webapps_deploy.core.config import Settings
from webapps_deploy.core.exceptions import (
    CredentialsExpiredError,
    DeploymentError,
    DeploymentStepError,
    DeploymentTimeoutError,
    FileLockedError,
    SiteLeftStoppedError,
)
from webapps_deploy.core.models import (
    DeploymentReport,
    DeploymentSession,
    DeploymentState,
    DeploymentStep,
    ReadinessMode,
    TargetDescriptor,
)
from webapps_deploy.deploy.credentials import CredentialProvider
from webapps_deploy.deploy.kudu import KuduClient
from webapps_deploy.deploy.management import ManagementClient
from webapps_deploy.deploy.readiness import (
    STOP_NOT_CONFIRMED,
    PublicSiteProbe,
    ReadinessPredicate,
    ReadinessProber,
    predicates_for_mode,
)
from webapps_deploy.utils.logging import task_span
from webapps_deploy.utils.step_metrics import StepTimer


logger = structlog.get_logger()


class _UseSettings:
    """Marker for "take the timeout from Settings"."""


_SETTINGS_TIMEOUT = _UseSettings()

TimeoutArg = Union[float, None, _UseSettings]

# What is known about the site when a step fails
REMOTE_STATE_AFTER_FAILURE = {
    DeploymentStep.ACQUIRE_CREDENTIALS: "unchanged",
    DeploymentStep.STOP: "unknown, inspect the site manually",
    DeploymentStep.WAIT_STOPPED: STOP_NOT_CONFIRMED,
    DeploymentStep.UPLOAD: "stopped, bundle possibly partially uploaded",
    DeploymentStep.START: "stopped with the new bundle uploaded",
}


class DeploymentOrchestrator:
    """Runs the redeployment workflow for one Web App."""

    def __init__(
        self,
        credential_provider: CredentialProvider,
        management: ManagementClient,
        kudu: KuduClient,
        prober: ReadinessProber,
        probe: PublicSiteProbe,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
        http_client: Optional[httpx.Client] = None,
    ):
        self.credential_provider = credential_provider
        self.management = management
        self.kudu = kudu
        self.prober = prober
        self.probe = probe
        self.settings = settings or Settings()
        self._sleep = sleep
        self._http_client = http_client

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DeploymentOrchestrator":
        """Wire every component with one shared HTTP client."""
        settings = settings or Settings()
        endpoints = settings.endpoints()
        client = httpx.Client(timeout=settings.request_timeout_seconds)
        management = ManagementClient(endpoints, http_client=client)
        return cls(
            credential_provider=CredentialProvider(management, endpoints, http_client=client),
            management=management,
            kudu=KuduClient(endpoints, http_client=client),
            prober=ReadinessProber(poll_interval=settings.poll_interval_seconds),
            probe=PublicSiteProbe(endpoints, http_client=client),
            settings=settings,
            http_client=client,
        )

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()

    def __enter__(self) -> "DeploymentOrchestrator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def default_predicates(self, mode: Optional[Union[ReadinessMode, str]] = None) -> list[ReadinessPredicate]:
        return predicates_for_mode(
            mode or self.settings.readiness_mode,
            self.probe,
            self.kudu,
            self.settings.process_name,
            self.settings.process_check_command,
        )

    @staticmethod
    def _ensure_fresh(session: DeploymentSession) -> None:
        if session.is_expired():
            raise CredentialsExpiredError(
                f"Credentials for WebApp '{session.target.web_app_name}' have expired; acquire new ones"
            )

    # Individual operations

    def acquire(self, target: TargetDescriptor) -> DeploymentSession:
        """Acquire the access token and deployment credentials for the Web App."""
        with task_span("Azure.WebApps.AcquireCredentials", webApp=target.web_app_name):
            return self.credential_provider.acquire_credentials(target)

    def stop(self, session: DeploymentSession) -> None:
        """Request a stop without waiting for it to take effect."""
        with task_span("Azure.WebApps.Stop", webApp=session.target.web_app_name):
            self.management.stop(session)

    def wait_stopped(
        self,
        session: DeploymentSession,
        predicates: Optional[Sequence[ReadinessPredicate]] = None,
        *,
        timeout: TimeoutArg = _SETTINGS_TIMEOUT,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Block until the stop is confirmed; return the number of checks made.

        The timeout defaults to Settings.wait_timeout; None or 0 waits
        indefinitely, the same as wait_timeout_seconds=0.
        """
        if isinstance(timeout, _UseSettings):
            timeout = self.settings.wait_timeout
        predicates = list(predicates) if predicates is not None else self.default_predicates()
        with task_span(
            "Azure.WebApps.WaitStopped",
            webApp=session.target.web_app_name,
            predicates=[p.name for p in predicates],
        ):
            return self.prober.poll_until(session, predicates, timeout=timeout, cancel_event=cancel_event)

    def stop_and_wait(
        self,
        session: DeploymentSession,
        predicates: Optional[Sequence[ReadinessPredicate]] = None,
        *,
        timeout: TimeoutArg = _SETTINGS_TIMEOUT,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Stop the Web App and wait until it is really stopped."""
        self.stop(session)
        return self.wait_stopped(session, predicates, timeout=timeout, cancel_event=cancel_event)

    def push_bundle(self, session: DeploymentSession, bundle_path: Union[str, Path]) -> int:
        """Upload a ZIP to the deploy path; return the number of attempts.

        The Web App should be stopped first. A locked file is retried
        `upload_lock_retries` times; every other error propagates at once.
        """
        bundle_path = Path(bundle_path)
        target = session.target
        with task_span("Azure.WebApps.Upload", webApp=target.web_app_name, file=str(bundle_path)):
            logger.debug("Reading ZIP", file=str(bundle_path))
            content = bundle_path.read_bytes()
            self._ensure_fresh(session)

            attempt = 0
            while True:
                attempt += 1
                try:
                    self.kudu.upload_bundle(session, content)
                    return attempt
                except FileLockedError:
                    if attempt > self.settings.upload_lock_retries:
                        raise
                    logger.warning(
                        "Upload hit a locked file, retrying",
                        attempt=attempt,
                        delay_seconds=self.settings.upload_lock_retry_delay_seconds,
                    )
                    self._sleep(self.settings.upload_lock_retry_delay_seconds)

    def start(self, session: DeploymentSession) -> None:
        with task_span("Azure.WebApps.Start", webApp=session.target.web_app_name):
            self._ensure_fresh(session)
            self.management.start(session)

    # Full workflow

    def deploy(
        self,
        target: TargetDescriptor,
        bundle_path: Union[str, Path],
        predicates: Optional[Sequence[ReadinessPredicate]] = None,
        *,
        timeout: TimeoutArg = _SETTINGS_TIMEOUT,
        cancel_event: Optional[threading.Event] = None,
    ) -> DeploymentReport:
        """Redeploy the Web App with the given ZIP bundle.

        Args:
            target: Validated target descriptor
            bundle_path: ZIP file to upload
            predicates: Stop confirmation checks; defaults to the configured readiness mode
            timeout: Deadline for the stop confirmation; defaults to settings, None or 0 waits forever
            cancel_event: Set to abort the stop confirmation

        Raises:
            DeploymentError: bundle missing, before anything remote happens
            DeploymentStepError: a step failed; `.step`, `.cause`, `.remote_state` describe it
            SiteLeftStoppedError: start failed, the site is left stopped
            DeploymentTimeoutError: stop confirmation timed out or was cancelled

        Errors raised by a step carry the report of the run so far in `.report`,
        with state `failed` and the timings of every step that ran.
        """
        bundle_path = Path(bundle_path)
        if not bundle_path.is_file():
            raise DeploymentError(f"Bundle not found: {bundle_path}", code="BUNDLE_NOT_FOUND")

        report = DeploymentReport(web_app_name=target.web_app_name)
        timer = StepTimer()

        def failed(error: DeploymentError) -> DeploymentError:
            report.state = DeploymentState.FAILED
            timer.fill(report)
            error.report = report
            return error

        def run(step: DeploymentStep, fn: Callable[[], object]) -> object:
            remote_state = REMOTE_STATE_AFTER_FAILURE[step]
            try:
                with timer.measure(step.value):
                    return fn()
            except DeploymentTimeoutError as exc:
                exc.step = step
                exc.remote_state = remote_state
                logger.error("Deployment timed out", step=step.value, remote_state=remote_state)
                raise failed(exc)
            except Exception as exc:
                if step is DeploymentStep.START:
                    logger.critical(
                        "WebApp was left stopped, start it manually",
                        step=step.value,
                        webApp=target.web_app_name,
                        error=str(exc),
                    )
                    raise failed(SiteLeftStoppedError(step, exc, remote_state)) from exc
                logger.error("Deployment step failed", step=step.value, remote_state=remote_state, error=str(exc))
                raise failed(DeploymentStepError(step, exc, remote_state)) from exc

        with task_span("Azure.WebApps.Deploy", webApp=target.web_app_name):
            session = run(DeploymentStep.ACQUIRE_CREDENTIALS, lambda: self.acquire(target))
            report.state = DeploymentState.CREDENTIALS_ACQUIRED

            report.state = DeploymentState.STOPPING
            run(DeploymentStep.STOP, lambda: self.stop(session))

            report.poll_iterations = run(
                DeploymentStep.WAIT_STOPPED,
                lambda: self.wait_stopped(session, predicates, timeout=timeout, cancel_event=cancel_event),
            )
            report.state = DeploymentState.STOPPED

            report.bundle_size = bundle_path.stat().st_size
            report.upload_attempts = run(DeploymentStep.UPLOAD, lambda: self.push_bundle(session, bundle_path))
            report.state = DeploymentState.UPLOADED

            run(DeploymentStep.START, lambda: self.start(session))
            report.state = DeploymentState.STARTED

            timer.fill(report)
            report.state = DeploymentState.DONE
            logger.info("Deployment finished", total_ms=report.total_ms, upload_attempts=report.upload_attempts)
            return report
