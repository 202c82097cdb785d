"""Thin CLI wrapper for fwupdate.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from fwupdate import __version__
from fwupdate.config import Settings, get_settings, print_settings_json
from fwupdate.types import RunMode, TargetName

app = typer.Typer(
    name="fwupdate",
    help="Firmware updater - update or verify boot partitions, flash and IO controller",
    no_args_is_help=True,
)
console = Console()

_OUTCOME_COLORS = {
    "updated": "green",
    "verified": "green",
    "skipped": "blue",
    "failed": "red",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"fwupdate version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Firmware updater - update or verify boot partitions, flash and IO controller."""
    configure_logging("DEBUG" if verbose else get_settings().log_level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Device:[/bold]")
    console.print(f"  Model:               {settings.model or '(not set)'}")
    console.print(f"  Generation:          {settings.generation or '(not set)'}")
    console.print()
    console.print("[bold]Targets:[/bold]")
    for target in TargetName:
        device = settings.device_for(target) or "(not configured)"
        section = settings.section_for(target)
        console.print(f"  {target.value:<20} {device} <- {section}")
    console.print()
    console.print("[bold]Flash geometry:[/bold]")
    console.print(f"  Header size:         {settings.flash_header_size}")
    console.print(f"  Erase block size:    {settings.flash_erase_block_size}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Manifest name:       {settings.manifest_name}")
    console.print(f"  Checksum file:       {settings.checksum_file_name}")
    console.print(f"  Mount options:       {settings.mount_options}")
    console.print(f"  IO controller tool:  {settings.ioc_tool}")
    console.print(f"  Temp directory:      {settings.tmp_dir or '(system default)'}")
    console.print(f"  Record history:      {settings.record_history}")
    console.print(f"  Database URL:        {settings.db_url}")
    console.print(f"  Log level:           {settings.log_level}")


def _apply_overrides(
    settings: Settings, model: str | None, generation: str | None
) -> Settings:
    updates: dict[str, str] = {}
    if model:
        updates["model"] = model
    if generation:
        updates["generation"] = generation
    return settings.model_copy(update=updates) if updates else settings


def _print_report(report_dict: dict) -> None:
    mode = report_dict["mode"]
    for label, key in (("Main firmware", "main"), ("IO controller", "io_controller")):
        buckets = report_dict[key]
        if not any(buckets.values()):
            continue
        console.print(f"[bold]{label}:[/bold]")
        for bucket, names in buckets.items():
            color = _OUTCOME_COLORS.get(bucket, "white")
            shown = ", ".join(names) if names else "-"
            console.print(f"  [{color}]{bucket.capitalize():<9}[/{color}] {shown}")

    for result in report_dict["results"]:
        if result["bricking_window"] is not None:
            console.print(
                f"  {result['target']}: bricking window "
                f"{result['bricking_window']:.2f}s"
            )
        if result["message"] and result["outcome"] in ("failed", "verified-failed"):
            console.print(f"  {result['target']}: {result['message']}")

    if report_dict["dry_run"] and report_dict["success"]:
        console.print("[green]✓ Dry-run: package verified[/green]")
        console.print(f"  Would process: {', '.join(report_dict['planned'])}")
    elif report_dict["success"]:
        done = "Update" if mode == RunMode.INSTALL.value else "Verification"
        console.print(f"[green]✓ {done} succeeded[/green]")
    else:
        console.print("[red]✗ Failed[/red]")
        if report_dict["error_message"]:
            console.print(f"  Error: {report_dict['error_message']}")


def _run(
    mode: RunMode,
    package: Path,
    targets: list[str] | None,
    model: str | None,
    generation: str | None,
    dry_run: bool,
    json_output: bool,
) -> None:
    from fwupdate.session import run_session

    settings = _apply_overrides(get_settings(), model, generation)

    if settings.record_history and not dry_run:
        from fwupdate.db import (
            create_all_tables,
            get_engine,
            get_session,
            get_session_factory,
        )

        engine = get_engine(settings.db_url)
        create_all_tables(engine)

        with get_session(get_session_factory(engine)) as session:
            report = run_session(
                package,
                mode=mode,
                settings=settings,
                targets=targets,
                dry_run=dry_run,
                db_session=session,
            )
    else:
        report = run_session(
            package, mode=mode, settings=settings, targets=targets, dry_run=dry_run
        )

    report_dict = report.to_dict()
    if json_output:
        console.print(json.dumps(report_dict, indent=2))
    else:
        _print_report(report_dict)

    if not report.success:
        raise typer.Exit(code=int(report.exit_status))


@app.command()
def update(
    package: Annotated[Path, typer.Argument(help="Firmware package (tarball)")],
    targets: Annotated[
        list[str] | None,
        typer.Option(
            "--target", "-t", help="Target to update (can be repeated, default all)"
        ),
    ] = None,
    model: Annotated[
        str | None, typer.Option("--model", "-m", help="Hardware model")
    ] = None,
    generation: Annotated[
        str | None, typer.Option("--generation", "-g", help="Hardware generation")
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", "-n", help="Verify the package without writing"),
    ] = False,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Skip confirmation prompt"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Install a firmware package on the device.

    Boot partitions are updated one at a time, keeping a good partition
    for as long as possible. Targets already up to date are skipped.
    """
    if not force and not dry_run:
        console.print(
            "[bold red]WARNING:[/bold red] This will REWRITE device firmware"
        )
        console.print(f"  Package: {package}")
        if targets:
            console.print(f"  Targets: {', '.join(targets)}")
        confirm = typer.confirm("Are you sure you want to continue?", default=False)
        if not confirm:
            console.print("[yellow]Aborted[/yellow]")
            raise typer.Exit(code=0)

    _run(RunMode.INSTALL, package, targets, model, generation, dry_run, json_output)


@app.command()
def verify(
    package: Annotated[Path, typer.Argument(help="Firmware package (tarball)")],
    targets: Annotated[
        list[str] | None,
        typer.Option(
            "--target", "-t", help="Target to verify (can be repeated, default all)"
        ),
    ] = None,
    model: Annotated[
        str | None, typer.Option("--model", "-m", help="Hardware model")
    ] = None,
    generation: Annotated[
        str | None, typer.Option("--generation", "-g", help="Hardware generation")
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Check that the device holds the firmware in a package.

    Nothing is written; every requested target is checked even if an
    earlier one does not match.
    """
    _run(RunMode.VERIFY, package, targets, model, generation, False, json_output)


@app.command()
def history(
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum number of runs to show"),
    ] = 20,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List recorded update and verify runs."""
    from fwupdate.db import create_all_tables, get_engine, get_session_factory
    from fwupdate.session import get_update_runs

    engine = get_engine()
    create_all_tables(engine)
    factory = get_session_factory(engine)

    with factory() as session:
        runs = get_update_runs(session, limit=limit)

        if not runs:
            if json_output:
                console.print("[]")
            else:
                console.print("[yellow]No runs recorded[/yellow]")
            return

        if json_output:
            output = [
                {
                    "id": r.id,
                    "mode": r.mode,
                    "package_path": r.package_path,
                    "model": r.model,
                    "generation": r.generation,
                    "success": r.success,
                    "exit_status": r.exit_status,
                    "error_code": r.error_code,
                    "error_message": r.error_message,
                    "started_at": r.started_at.isoformat() if r.started_at else None,
                    "finished_at": r.finished_at.isoformat() if r.finished_at else None,
                    "targets": [
                        {"target": t.target, "outcome": t.outcome} for t in r.targets
                    ],
                }
                for r in runs
            ]
            console.print(json.dumps(output, indent=2))
            return

        console.print(f"[bold]Found {len(runs)} run(s):[/bold]")
        console.print()
        for r in runs:
            color = "green" if r.success else "red"
            console.print(f"  [{color}]Run #{r.id}[/{color}] {r.mode}")
            console.print(f"    Package: {r.package_path}")
            console.print(
                f"    Started: {r.started_at.isoformat() if r.started_at else 'N/A'}"
            )
            for t in r.targets:
                console.print(f"    {t.target}: {t.outcome}")
            if r.error_message:
                console.print(f"    Error: {r.error_message}")
            console.print()


if __name__ == "__main__":
    app()
