#!/usr/bin/env python3
"""
🔗 Lakeshare CLI - Share data products across domains.

Usage:
    lakeshare register-domain <mesh.yaml> <domain>   Register a participant domain
    lakeshare domains                                List registered domains
    lakeshare publish <product.yaml>                 Register a data product
    lakeshare simulate <mesh.yaml>                   Run a whole mesh locally
    lakeshare --help                                 Show help
"""

import argparse
import sys
from pathlib import Path

import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from lakeshare.config import MeshConfig, WorkflowConfig, control_channel_name, get_settings
from lakeshare.errors import LakeshareError
from lakeshare.log import setup_logging
from lakeshare.products.models import DataProductRegistration

console = Console()


def _status(status: str) -> str:
    colors = {"SUCCEEDED": "green", "FAILED": "red", "RUNNING": "yellow"}
    return f"[{colors.get(status, 'white')}]{status}[/{colors.get(status, 'white')}]"


def _load_registration(path: Path) -> DataProductRegistration:
    if not path.exists():
        raise LakeshareError(f"No data product definition found at {path}")
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return DataProductRegistration(**data)


def register_domain(mesh_path: Path, domain_id: str, apply: bool = False) -> None:
    """Record a domain's handshake in the registry (and on EventBridge with --apply)."""
    from lakeshare.mesh import EventBridgeHandshake, TrustRegistry
    from lakeshare.mesh import register_domain as record_handshake

    settings = get_settings()
    mesh = MeshConfig.from_yaml(mesh_path)
    domain = mesh.get_domain(domain_id)

    registry = TrustRegistry(settings.registry_db)
    handshake = record_handshake(registry, mesh.control_domain, domain, settings.event_source)

    table = Table(title=f"🤝 Handshake for {domain_id}")
    table.add_column("Channel", style="cyan")
    table.add_column("Entry")
    table.add_column("Principal / Target")
    for permission in handshake.permissions:
        table.add_row(permission.channel, permission.statement_id, permission.principal)
    table.add_row(handshake.route.channel, handshake.route.name, handshake.route.target_channel)
    console.print(table)

    if apply:
        from lakeshare.services.aws import get_client

        EventBridgeHandshake(get_client("events", mesh.control_domain.region)).apply(handshake)
        console.print("[green]✓[/green] Applied to EventBridge")
        console.print(
            "[dim]The participant channel permission must be applied from the participant account.[/dim]"
        )


def list_domains() -> None:
    """List registered domains and the permissions on their channels."""
    from lakeshare.mesh import TrustRegistry

    registry = TrustRegistry(get_settings().registry_db)
    domains = registry.list_domains()

    if not domains:
        console.print("[yellow]No domains registered yet.[/yellow]")
        return

    table = Table(title="🌐 Registered Domains")
    table.add_column("Domain", style="cyan")
    table.add_column("Region")
    table.add_column("Channel")
    table.add_column("Allowed senders")
    table.add_column("Registered")

    for domain in domains:
        senders = ", ".join(p.principal for p in registry.list_permissions(domain.channel))
        table.add_row(
            domain.domain_id,
            domain.region,
            domain.channel,
            senders or "-",
            domain.registered_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


def publish(product_path: Path, mesh_path: Path | None = None, dry_run: bool = False) -> None:
    """Run the governance workflow for one data product."""
    from lakeshare.services.base import ControlPlaneServices
    from lakeshare.workflows import GovernanceWorkflow

    settings = get_settings()
    registration = _load_registration(product_path)
    if mesh_path:
        mesh = MeshConfig.from_yaml(mesh_path)
        config = WorkflowConfig.from_mesh(mesh, settings)
        region = mesh.control_domain.region
    else:
        config = WorkflowConfig.from_settings(settings)
        region = settings.region
    channel = control_channel_name(config.control_domain_id)

    if dry_run:
        from lakeshare.mesh import ChannelPublisher, MeshEventBus, TrustRegistry
        from lakeshare.services.memory import InMemoryCatalog, InMemoryPermissions

        bus = MeshEventBus(TrustRegistry(":memory:"))
        bus.create_channel(channel, owner=config.control_domain_id)
        services = ControlPlaneServices(
            permissions=InMemoryPermissions(),
            catalog=InMemoryCatalog(),
            events=ChannelPublisher(bus, channel, config.control_domain_id, region),
        )
    else:
        from lakeshare.services.aws import EventBridgeChannel, GlueCatalog, LakeFormationPermissions

        services = ControlPlaneServices(
            permissions=LakeFormationPermissions(region=region),
            catalog=GlueCatalog(region=region),
            events=EventBridgeChannel(channel, region=region),
        )

    mode = "[yellow]dry run[/yellow]" if dry_run else "[cyan]AWS[/cyan]"
    console.print(
        f"📦 Publishing [cyan]{registration.database_name}[/cyan] "
        f"to domain [cyan]{registration.producer_domain_id}[/cyan] ({mode})"
    )

    execution = GovernanceWorkflow(config, services).run(registration)

    if execution.succeeded:
        console.print(
            Panel(
                f"""[green]✓[/green] Data product registered

[bold]Database:[/bold] {registration.shared_database_name}
[bold]Tables:[/bold]   {", ".join(execution.output["table_names"])}
[bold]Event:[/bold]    {execution.output["event_id"]}""",
                title=execution.execution_id,
            )
        )
    else:
        console.print(
            f"[red]✗[/red] {execution.failed_state}: {execution.error} ({execution.cause})"
        )
        sys.exit(1)


def simulate(mesh_path: Path, real_time: bool = False) -> None:
    """Register every domain and publish every product on an in-process mesh."""
    from lakeshare.mesh import LocalMesh

    mesh_config = MeshConfig.from_yaml(mesh_path)
    mesh = LocalMesh.from_config(mesh_config, sleep=None if real_time else (lambda seconds: None))

    console.print(
        f"🌐 Simulating mesh with [cyan]{len(mesh.domains)}[/cyan] domain(s) "
        f"and [cyan]{len(mesh_config.products)}[/cyan] product(s)"
    )
    mesh.register_all()
    mesh.publish_all()

    table = Table(title="⚡ Executions")
    table.add_column("Domain", style="cyan")
    table.add_column("Workflow")
    table.add_column("Execution")
    table.add_column("Status")
    table.add_column("Duration", justify="right")

    rows = [(mesh.control.control.domain_id, e) for e in mesh.control.executions]
    for domain in mesh.domains.values():
        rows.extend((domain.domain_id, e) for e in domain.executions())

    failed = 0
    for domain_id, execution in rows:
        failed += execution.status == "FAILED"
        table.add_row(
            domain_id,
            execution.workflow,
            execution.execution_id[:12],
            _status(execution.status),
            f"{execution.duration_ms}ms",
        )
    console.print(table)

    for domain in mesh.domains.values():
        links = sorted(name for _, name in domain.services.catalog.links)
        if links:
            console.print(f"🔗 [cyan]{domain.domain_id}[/cyan]: {', '.join(links)}")

    if failed:
        console.print(f"[bold red]{failed} execution(s) failed[/bold red]")
        sys.exit(1)


def main() -> None:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="lakeshare",
        description="🔗 Lakeshare - Share data products across domains",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  lakeshare register-domain mesh.yaml 222222222222          Record the handshake locally
  lakeshare register-domain mesh.yaml 222222222222 --apply  ...and apply it on EventBridge
  lakeshare domains                                         List registered domains
  lakeshare publish sales.yaml --mesh mesh.yaml             Register a product on AWS
  lakeshare publish sales.yaml --dry-run                    Run against in-memory services
  lakeshare simulate mesh.yaml                              Run the whole mesh locally
        """,
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: from settings)")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # register-domain command
    register_parser = subparsers.add_parser(
        "register-domain", help="Register a participant domain with the control plane"
    )
    register_parser.add_argument("mesh", type=Path, help="Mesh configuration (mesh.yaml)")
    register_parser.add_argument("domain", help="Participant domain id")
    register_parser.add_argument(
        "--apply", action="store_true", help="Also apply the handshake on EventBridge"
    )

    # domains command
    subparsers.add_parser("domains", help="List registered domains")

    # publish command
    publish_parser = subparsers.add_parser("publish", help="Register a data product")
    publish_parser.add_argument("product", type=Path, help="Data product definition (YAML)")
    publish_parser.add_argument("--mesh", "-m", type=Path, help="Mesh configuration (mesh.yaml)")
    publish_parser.add_argument(
        "--dry-run", action="store_true", help="Run against in-memory services"
    )

    # simulate command
    simulate_parser = subparsers.add_parser("simulate", help="Run a whole mesh in-process")
    simulate_parser.add_argument("mesh", type=Path, help="Mesh configuration (mesh.yaml)")
    simulate_parser.add_argument(
        "--real-time", action="store_true", help="Honor wait durations instead of skipping them"
    )

    parser.add_argument("--version", action="version", version="%(prog)s 0.1.0")

    args = parser.parse_args()

    settings = get_settings()
    setup_logging(args.log_level or settings.log_level, args.json_logs or settings.log_json)

    try:
        if args.command == "register-domain":
            register_domain(args.mesh, args.domain, args.apply)
        elif args.command == "domains":
            list_domains()
        elif args.command == "publish":
            publish(args.product, args.mesh, args.dry_run)
        elif args.command == "simulate":
            simulate(args.mesh, args.real_time)
        else:
            parser.print_help()
    except (LakeshareError, ValidationError) as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
