#!/usr/bin/env python3
"""
fleetmon - inventory-driven monitoring fleet CLI

Mutating commands (add, remove, update) rewrite the inventory file
atomically but assume a single fleetmon invocation per inventory file at a
time; concurrent invocations can lose each other's changes.
"""

import argparse
import signal
import sys
from typing import List, Optional

from pydantic import ValidationError

from fleetmon import __version__
from fleetmon.models.deployment import DeploymentReport
from fleetmon.models.server_inventory import Inventory, MonitoringType, ServerRecord
from fleetmon.services.central_stack import CentralStack
from fleetmon.services.config_generator import write_config
from fleetmon.services.fleet_deployer import FleetDeployer, ssh_executor_factory
from fleetmon.services.inventory_persistence import load_inventory, persist_inventory
from fleetmon.services.verifier import CentralHealth, VerificationSummary, Verifier
from fleetmon.utils.errors import FleetmonError, InventoryValidationError
from fleetmon.utils.logging_config import setup_logging
from fleetmon.utils.settings import Settings

EXIT_OK = 0
EXIT_FAILED = 1

RULE = "=" * 42


class FleetmonArgumentParser(argparse.ArgumentParser):
    """Usage errors exit 1 with a FAILED line."""

    def error(self, message):
        self.print_usage(sys.stderr)
        print(f"FAILED: {message}")
        self.exit(EXIT_FAILED)


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser."""
    parser = FleetmonArgumentParser(
        prog="fleetmon",
        description="Inventory-driven deployment of Prometheus monitoring agents",
        epilog="add, remove and update assume one fleetmon process per inventory file.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--inventory",
        help="Inventory YAML (default: $FLEETMON_INVENTORY or production/inventory/servers.yml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Diagnostic log level (default: $LOG_LEVEL or WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    subparsers.add_parser("list", help="List servers in the inventory")

    add_parser = subparsers.add_parser("add", help="Add a server")
    add_parser.add_argument("name")
    add_parser.add_argument("hostname")
    add_parser.add_argument("ip")
    add_parser.add_argument("environment")
    add_parser.add_argument("role")
    add_parser.add_argument(
        "monitoring_type",
        metavar="type",
        help=", ".join(t.value for t in MonitoringType),
    )

    remove_parser = subparsers.add_parser("remove", help="Remove a server (no-op if absent)")
    remove_parser.add_argument("name")

    update_parser = subparsers.add_parser("update", help="Set one field on a server")
    update_parser.add_argument("name")
    update_parser.add_argument("field")
    update_parser.add_argument("value")

    subparsers.add_parser("validate", help="Validate the inventory")

    gen_parser = subparsers.add_parser("generate-config", help="Generate the Prometheus config")
    gen_parser.add_argument(
        "--output",
        help="Output path (default: $FLEETMON_OUTPUT_CONFIG or production/configs/prometheus-generated.yml)",
    )

    deploy_parser = subparsers.add_parser("deploy", help="Deploy the monitoring fleet")
    mode = deploy_parser.add_mutually_exclusive_group()
    mode.add_argument("--central-only", action="store_true", help="Only deploy the central stack")
    mode.add_argument("--agents-only", action="store_true", help="Only deploy agents to servers")
    mode.add_argument("--verify-only", action="store_true", help="Only verify agent endpoints")
    deploy_parser.add_argument("--parallel", type=int, help="Servers deployed at once (default: 5)")
    deploy_parser.add_argument(
        "--server-timeout", type=float, help="Upper bound on one server's steps in seconds"
    )

    subparsers.add_parser("health-check", help="Check the central monitoring stack")

    return parser


def build_settings(args) -> Settings:
    return Settings.from_env(
        inventory_path=args.inventory,
        output_config_path=getattr(args, "output", None),
        max_parallel=getattr(args, "parallel", None),
        server_timeout=getattr(args, "server_timeout", None),
    )


def print_issues(issues) -> None:
    for issue in issues:
        print(f"  - {issue}")


def handle_list(args, settings: Settings) -> int:
    inventory = load_inventory(settings.inventory_path)
    print(RULE)
    print("  Server Inventory")
    print(RULE)
    print(f"{'NAME':<20} {'HOSTNAME':<25} {'ENVIRONMENT':<12} {'ROLE':<15} TYPE")
    for row in inventory.iter_summaries():
        print(
            f"{row.name or '':<20} {row.hostname or '':<25} {row.environment or '':<12} "
            f"{row.role or '':<15} {row.monitoring_type or ''}"
        )
    print(RULE)
    print(f"SUCCESS: {len(inventory)} server(s) listed")
    return EXIT_OK


def handle_add(args, settings: Settings) -> int:
    inventory = load_inventory(settings.inventory_path)
    record = ServerRecord.from_add_args(
        args.name, args.hostname, args.ip, args.environment, args.role, args.monitoring_type
    )
    inventory.add(record)
    persist_inventory(inventory, settings.inventory_path)
    print(f"SUCCESS: added server {record.name}")
    return EXIT_OK


def handle_remove(args, settings: Settings) -> int:
    inventory = load_inventory(settings.inventory_path)
    if not inventory.remove(args.name):
        print(f"SUCCESS: server {args.name} not present, nothing to remove")
        return EXIT_OK
    persist_inventory(inventory, settings.inventory_path)
    print(f"SUCCESS: removed server {args.name}")
    return EXIT_OK


def handle_update(args, settings: Settings) -> int:
    inventory = load_inventory(settings.inventory_path)
    server = inventory.update(args.name, args.field, args.value)
    persist_inventory(inventory, settings.inventory_path)
    print(f"SUCCESS: updated {server.name}: {args.field} = {getattr(server, args.field)!r}")
    return EXIT_OK


def handle_validate(args, settings: Settings) -> int:
    inventory = load_inventory(settings.inventory_path)
    issues = inventory.validate()
    if issues:
        print(f"Inventory {settings.inventory_path} has {len(issues)} issue(s):")
        print_issues(issues)
        print(f"FAILED: {len(issues)} validation issue(s)")
        return EXIT_FAILED
    print(f"SUCCESS: {len(inventory)} server(s) valid")
    return EXIT_OK


def handle_generate_config(args, settings: Settings) -> int:
    inventory = load_inventory(settings.inventory_path)
    config = write_config(inventory, settings.output_config_path, settings)
    counts = ", ".join(
        f"{job.job_name}: {len(job.static_configs)} target(s)"
        for job in config.scrape_configs
        if job.job_name != "prometheus"
    )
    print(f"Wrote {settings.output_config_path} ({counts})")
    print(f"SUCCESS: configuration generated at {settings.output_config_path}")
    return EXIT_OK


def print_deploy_report(report: DeploymentReport) -> None:
    print(RULE)
    print("  Agent Deployment Summary")
    print(RULE)
    for outcome in report.outcomes:
        print(f"{outcome.server:<20} {outcome.state.value}")
        for step in outcome.steps:
            mark = "ok" if step.success else "FAILED"
            print(f"    {step.step:<26} {mark:<7} {step.message}")
    print(f"Total servers: {report.total}")
    print(f"Done: {len(report.succeeded)}")
    print(f"Failed: {len(report.failed)}")
    if report.cancelled:
        print("Run was cancelled; servers not started are reported as failed")
    print(RULE)


def print_verification(summary: VerificationSummary) -> None:
    print(RULE)
    print("  Deployment Verification Summary")
    print(RULE)
    print(f"Total servers: {summary.total}")
    print(f"Healthy servers: {summary.healthy}")
    print(f"Failing endpoints: {len(summary.failures)}")
    for failure in summary.failures:
        print(f"  - {failure.server} ({failure.capability}): {failure.reason}")
    print(RULE)


def print_central_health(health: CentralHealth) -> None:
    for endpoint in health.endpoints:
        state = "healthy" if endpoint.healthy else "UNHEALTHY"
        print(f"{endpoint.name:<14} {state:<10} {endpoint.detail}")
    if health.targets_error:
        print(f"Targets        unknown    {health.targets_error}")
    elif health.active_targets is not None:
        print(f"Targets        {health.up_targets}/{health.active_targets} up")
    if health.containers_error:
        print(f"Containers     unknown    {health.containers_error}")
    elif health.missing_containers:
        print(f"Containers     UNHEALTHY  not running: {', '.join(health.missing_containers)}")
    else:
        print("Containers     healthy    all running")


def run_agent_deploy(inventory: Inventory, settings: Settings) -> DeploymentReport:
    deployer = FleetDeployer(
        executor_factory=ssh_executor_factory(settings),
        settings=settings,
    )

    def on_interrupt(signum, frame):
        deployer.cancel()

    previous = signal.signal(signal.SIGINT, on_interrupt)
    try:
        return deployer.deploy(inventory)
    finally:
        signal.signal(signal.SIGINT, previous)


def handle_deploy(args, settings: Settings) -> int:
    inventory = load_inventory(settings.inventory_path)
    issues = inventory.validate()
    if issues:
        raise InventoryValidationError(issues)

    failures: List[str] = []
    run_central = not (args.agents_only or args.verify_only)
    run_agents = not (args.central_only or args.verify_only)
    run_verify = not args.central_only

    if run_central:
        try:
            CentralStack(settings).deploy(inventory)
            print("Central monitoring stack deployed")
        except FleetmonError as e:
            print(f"Central stack: {e.message}")
            failures.append("central stack")

    to_verify = list(inventory)
    if run_agents:
        report = run_agent_deploy(inventory, settings)
        print_deploy_report(report)
        if report.failed:
            failures.append(f"{len(report.failed)} server(s) failed")
        failed_names = {outcome.server for outcome in report.failed}
        to_verify = [server for server in inventory if server.name not in failed_names]

    if run_verify:
        summary = Verifier(settings).verify(to_verify)
        print_verification(summary)
        if summary.failures:
            failures.append(f"{len(summary.failures)} endpoint(s) not responding")

    if failures:
        print(f"FAILED: {'; '.join(failures)}")
        return EXIT_FAILED
    print("SUCCESS: deployment complete")
    return EXIT_OK


def handle_health_check(args, settings: Settings) -> int:
    health = CentralStack(settings).health()
    print_central_health(health)
    if not health.healthy:
        unhealthy = [e.name for e in health.endpoints if not e.healthy]
        if health.missing_containers or health.containers_error:
            unhealthy.append("containers")
        print(f"FAILED: unhealthy: {', '.join(unhealthy)}")
        return EXIT_FAILED
    print("SUCCESS: central monitoring stack is healthy")
    return EXIT_OK


HANDLERS = {
    "list": handle_list,
    "add": handle_add,
    "remove": handle_remove,
    "update": handle_update,
    "validate": handle_validate,
    "generate-config": handle_generate_config,
    "deploy": handle_deploy,
    "health-check": handle_health_check,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_FAILED

    setup_logging(args.log_level)

    try:
        settings = build_settings(args)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        print(f"FAILED: invalid settings: {problems}")
        return EXIT_FAILED

    handler = HANDLERS[args.command]
    try:
        return handler(args, settings)
    except InventoryValidationError as e:
        print(f"Inventory {settings.inventory_path} has {len(e.issues)} issue(s):")
        print_issues(e.issues)
        print(f"FAILED: {e.message}")
        return EXIT_FAILED
    except FleetmonError as e:
        print(f"FAILED: {e.message}")
        return EXIT_FAILED
    except OSError as e:
        print(f"FAILED: {e}")
        return EXIT_FAILED
    except KeyboardInterrupt:
        print("FAILED: interrupted")
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
