"""Command-line interface for Azure Arc onboarding prerequisites.

Usage:
    arc-onboarding check --devices-file servers.txt [options]
    arc-onboarding diagnostics [--location REGION] [--output-dir DIR]
    arc-onboarding install --device NAME [--device NAME ...]
    arc-onboarding gpo --target-ou "OU=Servers,DC=contoso,DC=com" [--create-ou]

Exit Codes:
    0   Ready (or ready with minor items) / command succeeded
    1   Partially ready, not ready, no results / command failed
    2   Invalid arguments or internal error

Examples:
    # Validate two servers at Critical depth without prompts
    arc-onboarding check --device srv01 --device srv02 --depth Critical --force

    # Validate a device list in parallel and output JSON
    arc-onboarding check --devices-file servers.txt --parallel --json
"""

import argparse
import asyncio
import logging
import sys

from arc_onboarding.core.auth import AuthSession
from arc_onboarding.core.config import Settings, get_settings
from arc_onboarding.core.logfile import ConsolidatedLogFile, LogFileError, configure_logging
from arc_onboarding.core.prompts import Prompter
from arc_onboarding.diagnostics.collector import DiagnosticsCollector
from arc_onboarding.preflight.device_list import DeviceListError, resolve_devices
from arc_onboarding.preflight.models import RunOptions, ValidationDepth
from arc_onboarding.preflight.orchestrator import PrerequisiteOrchestrator
from arc_onboarding.preflight.reports import ConsolidatedReporter, Verdict, generate_report
from arc_onboarding.preflight.runner import DeviceCheckRunner
from arc_onboarding.provisioning.gpo import GPODeployer
from arc_onboarding.provisioning.installer import AgentInstaller
from arc_onboarding.services.azure_client import AzureClientManager
from arc_onboarding.services.remote import DeviceExecutor
from arc_onboarding.services.resource_providers import ResourceProviderRegistrar

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_NOT_READY = 1
EXIT_ERROR = 2

PASSING_VERDICTS = {Verdict.READY, Verdict.READY_WITH_MINOR_ITEMS}


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--force",
        action="store_true",
        help="Non-interactive mode: never prompt, accept every default",
    )
    parser.add_argument(
        "--log-path",
        help="Log file or directory (default: prompt, or the working directory)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_device_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--devices-file",
        help="File with one device name per line ('#' comments allowed)",
    )
    parser.add_argument(
        "--device",
        action="append",
        dest="devices",
        default=[],
        help="Device name (can be repeated)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="arc-onboarding",
        description="Validate and prepare Windows servers for Azure Arc onboarding",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser("check", help="Run prerequisite checks on devices")
    _add_device_arguments(check)
    _add_common_arguments(check)
    check.add_argument(
        "--subscription-id",
        help="Subscription to use without prompting, if available to the identity",
    )
    check.add_argument(
        "--depth",
        type=ValidationDepth.parse,
        help="Validation depth: Basic, Critical or Comprehensive",
    )
    check.add_argument(
        "--parallel",
        action="store_true",
        help="Check devices concurrently",
    )
    check.add_argument(
        "--max-parallel",
        type=int,
        help="Maximum devices checked at once with --parallel",
    )
    output = check.add_mutually_exclusive_group()
    output.add_argument("--json", action="store_true", help="Output the report as JSON")
    output.add_argument("--markdown", action="store_true", help="Output the report as Markdown")

    diagnostics = subparsers.add_parser("diagnostics", help="Collect Azure Arc agent diagnostics")
    _add_common_arguments(diagnostics)
    diagnostics.add_argument("--location", help="Azure region for the connectivity check")
    diagnostics.add_argument("--output-dir", help="Directory for the log archive")

    install = subparsers.add_parser("install", help="Install the Azure Arc agent")
    _add_device_arguments(install)
    _add_common_arguments(install)

    gpo = subparsers.add_parser("gpo", help="Create and link the onboarding Group Policy")
    _add_common_arguments(gpo)
    gpo.add_argument("--name", help="GPO name")
    gpo.add_argument("--target-ou", help="Distinguished name of the OU to link")
    gpo.add_argument("--create-ou", action="store_true", help="Create the OU if it does not exist")
    gpo.add_argument(
        "--management-host",
        default="localhost",
        help="Domain-joined host with the GroupPolicy and ActiveDirectory modules",
    )

    return parser


def _open_log(settings: Settings, prompter: Prompter, requested: str | None) -> ConsolidatedLogFile:
    log_file = ConsolidatedLogFile(settings.log_directory, settings.log_file_prefix, prompter)
    try:
        log_file.open(requested)
    except LogFileError as e:
        logger.warning(f"Continuing without a log file: {e.message}")
    return log_file


def build_orchestrator(settings: Settings, prompter: Prompter) -> PrerequisiteOrchestrator:
    """Wire the orchestrator with its Azure and device collaborators."""
    client_manager = AzureClientManager(settings)
    return PrerequisiteOrchestrator(
        auth_session=AuthSession(client_manager, prompter),
        registrar=ResourceProviderRegistrar(client_manager),
        runner=DeviceCheckRunner(DeviceExecutor(settings), settings),
        settings=settings,
    )


async def run_check(args: argparse.Namespace, settings: Settings, prompter: Prompter) -> int:
    devices = resolve_devices(args.devices, args.devices_file)
    options = RunOptions(
        depth=args.depth or ValidationDepth.parse(settings.validation_depth),
        subscription_id=args.subscription_id or settings.subscription_id,
        non_interactive=not prompter.interactive,
        parallel=args.parallel,
        max_parallel=args.max_parallel or settings.max_parallel_devices,
    )

    orchestrator = build_orchestrator(settings, prompter)
    orchestrator.set_progress_callback(
        lambda done, total, device: logger.info(f"[{done}/{total}] Finished {device}")
    )
    result = await orchestrator.run(devices, options)
    report = ConsolidatedReporter().build(result)

    fmt = "json" if args.json else "markdown" if args.markdown else "text"
    print(generate_report(report, fmt))

    return EXIT_OK if report.verdict in PASSING_VERDICTS else EXIT_NOT_READY


def _print_progress(percent: float, label: str) -> None:
    filled = int(percent // 5)
    sys.stderr.write(f"\r[{'#' * filled}{'.' * (20 - filled)}] {percent:5.1f}% {label:<40}")
    if percent >= 100:
        sys.stderr.write("\n")
    sys.stderr.flush()


async def run_diagnostics(args: argparse.Namespace, settings: Settings, prompter: Prompter) -> int:
    collector = DiagnosticsCollector(
        settings=settings, prompter=prompter, progress_callback=_print_progress
    )
    result = await collector.collect(args.location, args.output_dir)

    for step in result.steps:
        status = "OK" if step.success else f"FAILED (exit code {step.result.exit_code})"
        print(f"{step.name:<20} {status}")
    if result.archive_path:
        print(f"Diagnostic archive: {result.archive_path}")
    elif not result.consent_given:
        print("Log archive collection skipped")

    return EXIT_OK if result.success else EXIT_NOT_READY


async def run_install(args: argparse.Namespace, settings: Settings, prompter: Prompter) -> int:
    devices = resolve_devices(args.devices, args.devices_file)
    installer = AgentInstaller(settings=settings)

    failures = 0
    for device in devices:
        result = await installer.install(device)
        print(f"{device:<24} {'OK' if result.success else 'FAILED'}  {result.message}")
        if not result.success:
            failures += 1

    return EXIT_OK if failures == 0 else EXIT_NOT_READY


async def run_gpo(args: argparse.Namespace, settings: Settings, prompter: Prompter) -> int:
    deployer = GPODeployer(settings=settings, management_host=args.management_host)
    create_ou = args.create_ou
    if not create_ou and prompter.interactive:
        create_ou = prompter.confirm("Create the target OU if it does not exist?", default=False)

    result = await deployer.deploy(args.name, args.target_ou, create_ou=create_ou)
    print(f"GPO '{result.gpo_name}': {'OK' if result.success else 'FAILED'} - {result.message}")
    return EXIT_OK if result.success else EXIT_NOT_READY


COMMANDS = {
    "check": run_check,
    "diagnostics": run_diagnostics,
    "install": run_install,
    "gpo": run_gpo,
}


async def async_main(argv: list[str] | None = None) -> int:
    """Async main entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()

    configure_logging("DEBUG" if args.verbose or settings.debug else settings.log_level)

    prompter = Prompter(interactive=not (args.force or settings.non_interactive))
    log_file = _open_log(settings, prompter, args.log_path)

    try:
        with log_file:
            return await COMMANDS[args.command](args, settings, prompter)

    except DeviceListError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return EXIT_ERROR

    except Exception as e:
        logger.exception("Unexpected error")
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    finally:
        if log_file.path is not None:
            print(f"Log file: {log_file.path}")


def main() -> int:
    """Main entry point."""
    return asyncio.run(async_main())


if __name__ == "__main__":
    sys.exit(main())
