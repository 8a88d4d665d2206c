"""
ArchForge CLI Main Entry Point.

Provides the command-line interface for preparing a disk and installing
Arch Linux onto it.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import click
import humanize
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from archforge import __version__
from archforge.core.config import ArchForgeConfig, SystemConfig, load_config
from archforge.core.credentials import Credential, InstallCredentials
from archforge.core.errors import ArchForgeError, InstallAborted
from archforge.core.models import BlockDevice
from archforge.core.session import Session
from archforge.install.bootloader import build_kernel_cmdline
from archforge.install.device import detect_boot_mode, select_target_device
from archforge.install.hardware import detect_hardware
from archforge.install.partition import build_partition_plan
from archforge.install.reclaim import ResourceReclaimer
from archforge.install.swap import SwapProvisioner
from archforge.install.workflow import Installer, Scope

console = Console()

EVENT_STYLES = {
    "start": ("cyan", "→"),
    "success": ("green", "✓"),
    "warning": ("yellow", "⚠"),
    "error": ("red", "✗"),
}


def get_session(ctx: click.Context) -> Session:
    """Get or create session from context."""
    if "session" not in ctx.obj:
        config = ctx.obj.get("config") or load_config()
        session = Session(config=config)
        ctx.obj["session"] = session
        ctx.call_on_close(session.close)
    return ctx.obj["session"]


def emit_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def event_printer(quiet: bool):
    """Status-line callback for the installer workflow."""

    def on_event(kind: str, message: str) -> None:
        if quiet and kind == "start":
            return
        style, symbol = EVENT_STYLES.get(kind, ("white", "•"))
        console.print(f"[{style}]{symbol} {message}[/{style}]")

    return on_event


def require_confirmation(session: Session, target: str) -> None:
    """Ask for the typed confirmation string; exit on mismatch."""
    if not session.safety.confirmation_required:
        return

    confirm_str = session.safety.generate_confirmation_string(target)
    console.print(f"[red]⚠️  This will destroy all data on {target}[/red]")
    user_confirm = click.prompt(f"Type '{confirm_str}' to confirm")

    verified, message = session.safety.verify_confirmation(target, user_confirm)
    if not verified:
        console.print(f"[red]Confirmation failed - operation cancelled ({message})[/red]")
        sys.exit(1)


def prompt_password(label: str) -> Credential:
    """Prompt twice with hidden input until a non-empty password is given."""
    while True:
        value = click.prompt(label, hide_input=True, confirmation_prompt=True)
        if value:
            return Credential.from_str(value)
        console.print("[red]Password cannot be empty[/red]")


def _device_rows(device: BlockDevice, depth: int = 0) -> list[tuple[str, ...]]:
    rows = [
        (
            ("  " * depth) + device.path,
            device.device_type,
            humanize.naturalsize(device.size_bytes, binary=True),
            device.model or "",
            device.transport or "",
            device.fstype or "",
            device.mountpoint or "",
        )
    ]
    for child in device.children:
        rows.extend(_device_rows(child, depth + 1))
    return rows


@click.group()
@click.version_option(version=__version__, prog_name="ArchForge")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    json_output: bool,
    quiet: bool,
) -> None:
    """
    ArchForge - Guided Arch Linux installer.

    Reclaims, partitions, formats and mounts a target disk, creates a
    hibernation-capable swap file and installs a configured Arch Linux
    system with GRUB.
    """
    ctx.ensure_object(dict)

    if config:
        loaded = ArchForgeConfig.load(config)
        loaded.ensure_directories()
        ctx.obj["config"] = loaded
    else:
        ctx.obj["config"] = load_config()

    if quiet:
        ctx.obj["config"].logging.level = "WARNING"

    ctx.obj["json_output"] = json_output
    ctx.obj["quiet"] = quiet


@cli.command("list")
@click.pass_context
def list_devices(ctx: click.Context) -> None:
    """List block devices."""
    session = get_session(ctx)

    with console.status("Scanning devices..."):
        devices = session.platform.list_block_devices()

    if ctx.obj.get("json_output"):
        emit_json([d.to_dict() for d in devices])
        return

    table = Table(title="Block Devices")
    table.add_column("Device", style="cyan")
    table.add_column("Type", style="yellow")
    table.add_column("Size", style="green")
    table.add_column("Model", style="white")
    table.add_column("Transport", style="magenta")
    table.add_column("Filesystem", style="blue")
    table.add_column("Mountpoint", style="red")

    for device in devices:
        for row in _device_rows(device):
            table.add_row(*row)

    console.print(table)


@cli.command("plan")
@click.argument("device")
@click.option(
    "--boot-mode",
    type=click.Choice(["auto", "uefi", "bios"]),
    default=None,
    help="Override the configured boot mode",
)
@click.pass_context
def plan(ctx: click.Context, device: str, boot_mode: str | None) -> None:
    """Show the partition layout, swap size and kernel command line for DEVICE."""
    session = get_session(ctx)
    config = session.config
    backend = session.platform

    try:
        target = select_target_device(
            backend, device, protect_system_disk=config.safety.system_disk_protection
        )
    except ArchForgeError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    mode = detect_boot_mode(backend, boot_mode or config.layout.boot_mode)
    partition_plan = build_partition_plan(target, mode, config.layout)
    swap = SwapProvisioner(backend, config.swap).plan(config.target_root) if config.swap.enabled else None

    cmdline = build_kernel_cmdline(None, config.system.kernel_cmdline)
    if swap is not None and config.swap.hibernation:
        cmdline += " resume=UUID=<root UUID> resume_offset=<swap file offset>"

    if ctx.obj.get("json_output"):
        emit_json(
            {
                "plan": partition_plan.to_dict(),
                "swap": swap.to_dict() if swap else None,
                "kernel_cmdline": cmdline,
            }
        )
        return

    table = Table(title=f"Partition Plan: {target.path} ({mode.value.upper()}, {partition_plan.table_type.value})")
    table.add_column("#", style="cyan")
    table.add_column("Device", style="white")
    table.add_column("Role", style="yellow")
    table.add_column("Filesystem", style="blue")
    table.add_column("Start", style="green")
    table.add_column("End", style="green")
    table.add_column("Flags", style="magenta")

    for spec in partition_plan.partitions:
        table.add_row(
            str(spec.number),
            target.partition_path(spec.number),
            spec.role.name,
            spec.filesystem.value,
            spec.start_arg,
            spec.end_arg,
            ",".join(f.value for f in spec.flags),
        )
    console.print(table)

    details = [f"Device size: {humanize.naturalsize(target.size_bytes, binary=True)}"]
    if swap is not None:
        details.append(
            f"Swap file: {swap.path} {humanize.naturalsize(swap.size_bytes, binary=True)} "
            f"(RAM {humanize.naturalsize(swap.ram_bytes, binary=True)} x {config.swap.ratio_percent}%)"
        )
    else:
        details.append("Swap file: disabled")
    details.append(f"Kernel command line: {cmdline}")
    console.print(Panel("\n".join(details), title="Details"))


@cli.command("hardware")
@click.pass_context
def hardware(ctx: click.Context) -> None:
    """Show detected CPU and GPU vendors."""
    session = get_session(ctx)
    profile = detect_hardware(session.platform)

    if ctx.obj.get("json_output"):
        emit_json(profile.to_dict())
        return

    table = Table(title="Hardware")
    table.add_column("Component", style="cyan")
    table.add_column("Vendor", style="green")
    table.add_column("Description", style="white")

    table.add_row("CPU", profile.cpu.value, profile.cpu_description or "")
    for vendor, description in zip(profile.gpus, profile.gpu_descriptions):
        table.add_row("GPU", vendor.value, description)
    console.print(table)

    for component in profile.unknown_components:
        console.print(f"[yellow]⚠ Unrecognized vendor: {component}[/yellow]")


@cli.command("reclaim")
@click.argument("device")
@click.option("--attempts", type=click.IntRange(1, 20), default=None, help="Maximum attempts")
@click.pass_context
def reclaim(ctx: click.Context, device: str, attempts: int | None) -> None:
    """Release DEVICE: kill holders, unmount, deactivate LVM, disable swap."""
    session = get_session(ctx)
    config = session.config
    backend = session.platform

    try:
        target = select_target_device(
            backend, device, protect_system_disk=config.safety.system_disk_protection
        )
    except ArchForgeError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    require_confirmation(session, target.path)

    cleanup = config.cleanup
    if attempts is not None:
        cleanup = cleanup.model_copy(update={"max_attempts": attempts})

    with console.status(f"Reclaiming {target.path}..."):
        result = ResourceReclaimer(backend, cleanup).reclaim(target)

    if ctx.obj.get("json_output"):
        emit_json(result.to_dict())
    elif result.success:
        console.print(f"[green]✓ {target.path} released after {result.attempt_count} attempt(s)[/green]")
    else:
        console.print(
            f"[yellow]⚠ {target.path} still in use after {result.attempt_count} attempts[/yellow]"
        )
        if result.remaining_mounts:
            console.print(f"  Mounts: {', '.join(result.remaining_mounts)}")
        if result.remaining_holders:
            console.print(f"  Processes: {', '.join(str(p) for p in result.remaining_holders)}")

    if not result.success:
        sys.exit(1)


def _run_installer(
    ctx: click.Context,
    scope: Scope,
    device: str,
    dry_run: bool,
    credentials: InstallCredentials | None = None,
) -> None:
    session = get_session(ctx)
    quiet = ctx.obj.get("quiet", False)
    installer = Installer(session, device, credentials=credentials, on_event=event_printer(quiet))

    try:
        execution_plan = installer.describe(scope)
        if dry_run:
            console.print(
                Panel(
                    "[yellow]DRY RUN - No changes will be made[/yellow]\n\n"
                    + execution_plan.get_plan_text(),
                    title="Install Plan" if scope == "install" else "Prepare Plan",
                )
            )
            return

        if not quiet:
            console.print(Panel(execution_plan.get_plan_text(), title="Execution Plan"))
        require_confirmation(session, device)

        if scope == "install" and installer.credentials is None:
            root = prompt_password("Root password")
            user = None
            if session.config.system.username:
                user = prompt_password(f"Password for {session.config.system.username}")
            installer.credentials = InstallCredentials(root=root, user=user)

        state = installer.run(scope)
    except InstallAborted as e:
        console.print(f"[red]✗ Aborted at step '{e.step}': {e.reason}[/red]")
        sys.exit(1)
    finally:
        if installer.credentials is not None:
            installer.credentials.wipe()

    report = session.get_report()
    if ctx.obj.get("json_output"):
        emit_json(
            {
                "completed_steps": state.completed_steps,
                "warnings": report.warnings,
                "artifacts": report.artifacts,
            }
        )
        return

    if report.warnings:
        console.print(f"[yellow]Completed with {len(report.warnings)} warning(s)[/yellow]")
    message = "Installation complete" if scope == "install" else "Disk prepared"
    console.print(f"[green]✓ {message}: {device}[/green]")


@cli.command("prepare")
@click.argument("device")
@click.option("--dry-run", is_flag=True, help="Show what would be done")
@click.pass_context
def prepare(ctx: click.Context, device: str, dry_run: bool) -> None:
    """Reclaim, partition, format and mount DEVICE and create the swap file."""
    _run_installer(ctx, "prepare", device, dry_run)


@cli.command("install")
@click.argument("device")
@click.option("--dry-run", is_flag=True, help="Show what would be done")
@click.option("--hostname", default=None, help="Hostname of the installed system")
@click.option("--username", default=None, help="Create this user in the wheel group")
@click.option("--timezone", default=None, help="Timezone, e.g. Europe/Berlin")
@click.option("--locale", "locale_name", default=None, help="Locale, e.g. en_US.UTF-8")
@click.pass_context
def install(
    ctx: click.Context,
    device: str,
    dry_run: bool,
    hostname: str | None,
    username: str | None,
    timezone: str | None,
    locale_name: str | None,
) -> None:
    """Prepare DEVICE and install a configured Arch Linux system onto it."""
    config: ArchForgeConfig = ctx.obj["config"]
    overrides = {
        key: value
        for key, value in {
            "hostname": hostname,
            "username": username,
            "timezone": timezone,
            "locale": locale_name,
        }.items()
        if value is not None
    }
    if overrides:
        try:
            config.system = SystemConfig.model_validate({**config.system.model_dump(), **overrides})
        except ValueError as e:
            console.print(f"[red]Invalid system settings: {e}[/red]")
            sys.exit(1)

    _run_installer(ctx, "install", device, dry_run)


def main() -> None:
    """Main entry point."""
    try:
        cli(obj={}, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except (KeyboardInterrupt, click.Abort):
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
