"""CLI entrypoints (webapps-deploy deploy|start|stop|upload|command|webjob)."""

from __future__ import annotations

import argparse
import sys
import uuid
from typing import Optional, Sequence

import structlog
from pydantic import ValidationError

from webapps_deploy import __version__
from webapps_deploy.core.config import Settings, load_target
from webapps_deploy.core.exceptions import (
    ConfigurationError,
    DeploymentTimeoutError,
    SiteLeftStoppedError,
    WebAppsDeployError,
)
from webapps_deploy.core.models import ReadinessMode, WebJobAction
from webapps_deploy.deploy.orchestrator import DeploymentOrchestrator
from webapps_deploy.utils.logging import bind_deployment_context, setup_logging


logger = structlog.get_logger()

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_FAILED = 2
EXIT_LEFT_STOPPED = 3
EXIT_TIMEOUT = 4


def _add_target_args(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("target overrides (defaults come from AZURE_* variables)")
    group.add_argument("--subscription", dest="subscription_id", help="Subscription id")
    group.add_argument("--resource-group", dest="resource_group", help="Resource group")
    group.add_argument("--webapp", dest="web_app_name", help="Web App name")
    group.add_argument("--deploy-path", dest="deploy_path", help="Path inside the site receiving the ZIP")


def _add_wait_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--readiness",
        choices=[m.value for m in ReadinessMode],
        help="Stop confirmation: 'basic' (site disabled) or 'process' (also host process gone)",
    )
    parser.add_argument("--process-name", help="Host process for --readiness process")
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds to wait for the stop to take effect; 0 waits indefinitely",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="webapps-deploy", description="Redeploy an Azure Web App")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    parser.add_argument("--log-format", choices=["json", "console"], help="Override LOG_FORMAT")
    sub = parser.add_subparsers(dest="cmd", required=True)

    cmd_deploy = sub.add_parser("deploy", help="Stop, upload a ZIP and start the Web App")
    cmd_deploy.add_argument("bundle", help="Path to the ZIP bundle")
    cmd_deploy.add_argument("--lock-retries", type=int, help="Retries when the upload hits a locked file")
    _add_wait_args(cmd_deploy)
    _add_target_args(cmd_deploy)

    cmd_start = sub.add_parser("start", help="Start the Web App")
    _add_target_args(cmd_start)

    cmd_stop = sub.add_parser("stop", help="Stop the Web App")
    cmd_stop.add_argument("--wait", action="store_true", help="Wait until the stop has taken effect")
    _add_wait_args(cmd_stop)
    _add_target_args(cmd_stop)

    cmd_upload = sub.add_parser("upload", help="Upload a ZIP without stopping the Web App")
    cmd_upload.add_argument("bundle", help="Path to the ZIP bundle")
    cmd_upload.add_argument("--lock-retries", type=int, help="Retries when the upload hits a locked file")
    _add_target_args(cmd_upload)

    cmd_command = sub.add_parser("command", help="Run a command on the instance")
    cmd_command.add_argument("command", help="Command line, including any shell it needs")
    cmd_command.add_argument("--dir", default="", help="Working directory on the instance")
    _add_target_args(cmd_command)

    cmd_webjob = sub.add_parser("webjob", help="Start or stop a continuous WebJob")
    cmd_webjob.add_argument("name", help="WebJob name")
    cmd_webjob.add_argument("action", choices=[a.value for a in WebJobAction])
    _add_target_args(cmd_webjob)

    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    overrides = {
        "log_level": args.log_level,
        "log_format": args.log_format,
        "readiness_mode": getattr(args, "readiness", None),
        "process_name": getattr(args, "process_name", None),
        "wait_timeout_seconds": getattr(args, "timeout", None),
        "upload_lock_retries": getattr(args, "lock_retries", None),
    }
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


def _run(args: argparse.Namespace, orchestrator: DeploymentOrchestrator) -> int:
    target = load_target(
        subscription_id=args.subscription_id,
        resource_group=args.resource_group,
        web_app_name=args.web_app_name,
        deploy_path=args.deploy_path,
    )
    bind_deployment_context(target.web_app_name, uuid.uuid4().hex[:12])

    if args.cmd == "deploy":
        report = orchestrator.deploy(target, args.bundle)
        logger.info("Deployment report", **report.model_dump(mode="json"))
        return EXIT_OK

    session = orchestrator.acquire(target)

    if args.cmd == "start":
        orchestrator.start(session)
    elif args.cmd == "stop":
        if args.wait:
            orchestrator.stop_and_wait(session)
        else:
            orchestrator.stop(session)
    elif args.cmd == "upload":
        orchestrator.push_bundle(session, args.bundle)
    elif args.cmd == "command":
        result = orchestrator.kudu.run_command(session, args.command, args.dir)
        if result.output:
            sys.stdout.write(result.output)
        if result.error:
            sys.stderr.write(result.error)
        return result.exit_code
    elif args.cmd == "webjob":
        orchestrator.kudu.webjob(session, args.name, args.action)
    return EXIT_OK


def _log_failure_report(exc: WebAppsDeployError) -> None:
    report = getattr(exc, "report", None)
    if report is not None:
        logger.info("Deployment report", **report.model_dump(mode="json"))


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = _settings_from_args(args)
    except ValidationError as exc:
        print(f"ERROR: invalid settings: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    setup_logging(settings.log_level, settings.log_format)

    with DeploymentOrchestrator.from_settings(settings) as orchestrator:
        try:
            return _run(args, orchestrator)
        except ConfigurationError as exc:
            for error in exc.errors:
                logger.error("Configuration validation error", error=error)
            logger.error("Target configuration validation failed", error_count=len(exc.errors))
            return EXIT_CONFIG
        except SiteLeftStoppedError as exc:
            logger.critical("Deployment failed, WebApp is stopped", error=str(exc), remote_state=exc.remote_state)
            _log_failure_report(exc)
            return EXIT_LEFT_STOPPED
        except DeploymentTimeoutError as exc:
            logger.error(
                "Deployment timed out, WebApp is not restarted",
                error=str(exc),
                cancelled=exc.cancelled,
                remote_state=exc.remote_state,
            )
            _log_failure_report(exc)
            return EXIT_TIMEOUT
        except WebAppsDeployError as exc:
            logger.error("Deployment failed", error=str(exc), code=exc.code)
            _log_failure_report(exc)
            return EXIT_FAILED
        except OSError as exc:
            logger.error("Deployment failed", error=str(exc))
            return EXIT_FAILED


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
