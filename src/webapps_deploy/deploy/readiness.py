"""Readiness prober: decides when a requested stop has actually taken effect.

The stop action on the management plane returns before the site is really
down, and the platform has no event for it, so readiness is polled.
"""

from __future__ import annotations

import re
import threading
import time
from typing import Callable, Optional, Protocol, Sequence, runtime_checkable

import httpx
import structlog

from webapps_deploy.core.exceptions import DeploymentTimeoutError
from webapps_deploy.core.models import DeploymentSession, DeploymentStep, PlatformEndpoints, ReadinessMode
from webapps_deploy.deploy.kudu import KuduClient


logger = structlog.get_logger()

DEFAULT_POLL_INTERVAL = 1.0

SITE_DISABLED_STATUS = 403
SITE_DISABLED_REASON = "Site Disabled"

STOP_NOT_CONFIRMED = "stop requested, not confirmed"

_PROCESS_NAME = re.compile(r"^[A-Za-z0-9._-]+$")


@runtime_checkable
class ReadinessPredicate(Protocol):
    """Named boolean check over a session."""

    name: str

    def __call__(self, session: DeploymentSession) -> bool:
        ...


class PublicSiteProbe:
    """Unauthenticated HEAD request against the public address of a site."""

    def __init__(
        self,
        endpoints: Optional[PlatformEndpoints] = None,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ):
        self.endpoints = endpoints or PlatformEndpoints()
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def status(self, session: DeploymentSession) -> tuple[int, str]:
        """Return the status code and reason phrase of the site root."""
        response = self._client.head(self.endpoints.public_url(session.target))
        return response.status_code, response.reason_phrase


class SiteDisabledPredicate:
    """Site root answers with the platform's "administratively disabled" signal."""

    name = "site_disabled"

    def __init__(
        self,
        probe: PublicSiteProbe,
        status_code: int = SITE_DISABLED_STATUS,
        reason: str = SITE_DISABLED_REASON,
    ):
        self.probe = probe
        self.status_code = status_code
        self.reason = reason

    def __call__(self, session: DeploymentSession) -> bool:
        status_code, reason = self.probe.status(session)
        disabled = status_code == self.status_code and reason.casefold() == self.reason.casefold()
        logger.debug("Site status", status=status_code, reason=reason, disabled=disabled)
        return disabled


class ProcessAbsentPredicate:
    """Named host process is no longer running on the instance.

    The check command must exit with 0 when the process is absent and with a
    non-zero code when it is found.
    """

    name = "process_absent"

    def __init__(self, kudu: KuduClient, process_name: str, command_template: str, working_dir: str = ""):
        if not _PROCESS_NAME.match(process_name):
            raise ValueError(f"Invalid process name: {process_name!r}")
        self.kudu = kudu
        self.process_name = process_name
        self.command = command_template.format(process_name=process_name)
        self.working_dir = working_dir

    def __call__(self, session: DeploymentSession) -> bool:
        result = self.kudu.run_command(session, self.command, self.working_dir)
        absent = result.exit_code == 0
        logger.debug("Process check", process=self.process_name, exit_code=result.exit_code, absent=absent)
        return absent


def basic_stop_confirmation(probe: PublicSiteProbe) -> list[ReadinessPredicate]:
    return [SiteDisabledPredicate(probe)]


def process_drain_confirmation(
    probe: PublicSiteProbe, kudu: KuduClient, process_name: str, command_template: str
) -> list[ReadinessPredicate]:
    return [SiteDisabledPredicate(probe), ProcessAbsentPredicate(kudu, process_name, command_template)]


def predicates_for_mode(
    mode: ReadinessMode,
    probe: PublicSiteProbe,
    kudu: KuduClient,
    process_name: str,
    command_template: str,
) -> list[ReadinessPredicate]:
    mode = ReadinessMode(mode)
    if mode is ReadinessMode.PROCESS:
        return process_drain_confirmation(probe, kudu, process_name, command_template)
    return basic_stop_confirmation(probe)


class ReadinessProber:
    """Polls predicates until they all hold in the same iteration."""

    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    def poll_until(
        self,
        session: DeploymentSession,
        predicates: Sequence[ReadinessPredicate],
        poll_interval: Optional[float] = None,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Block until every predicate holds; return the number of iterations.

        All predicates are evaluated on each iteration, left to right. A
        timeout of None or 0 waits indefinitely. When cancel_event is given
        the pause between iterations is a wait on the event, so setting it
        interrupts the pause instead of taking effect on the next iteration.

        Raises:
            ValueError: if no predicates are given
            DeploymentTimeoutError: when the timeout elapses or cancel_event is set
        """
        if not predicates:
            raise ValueError("At least one readiness predicate is required")

        interval = self.poll_interval if poll_interval is None else poll_interval
        deadline = self._clock() + timeout if timeout else None
        iteration = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise DeploymentTimeoutError(
                    "Waiting for the site to stop was cancelled",
                    step=DeploymentStep.WAIT_STOPPED,
                    cancelled=True,
                    remote_state=STOP_NOT_CONFIRMED,
                )

            iteration += 1
            results = [(predicate.name, bool(predicate(session))) for predicate in predicates]
            if all(ok for _, ok in results):
                logger.info("Site has stopped", iteration=iteration)
                return iteration

            logger.info(
                "Site is still running, waiting...",
                iteration=iteration,
                pending=[name for name, ok in results if not ok],
            )

            delay = interval
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    raise DeploymentTimeoutError(
                        f"Site did not stop within {timeout} seconds ({iteration} checks)",
                        step=DeploymentStep.WAIT_STOPPED,
                        remote_state=STOP_NOT_CONFIRMED,
                    )
                delay = min(interval, remaining)
            if cancel_event is not None:
                cancel_event.wait(delay)
            else:
                self._sleep(delay)
