from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from gitstoremeta.apply import apply
from gitstoremeta.codec import APP_NAME, APP_VERSION
from gitstoremeta.config import (
    StoreMetaConfig,
    resolve_fields,
    snapshot_path,
    try_read_snapshot_fields,
)
from gitstoremeta.errors import (
    FatalSetupError,
    MalformedSnapshotError,
    NoSnapshotError,
    StoreMetaError,
    UnsupportedSchemaError,
)
from gitstoremeta.git import GitRepository
from gitstoremeta.log import setup_logging
from gitstoremeta.models import ALL_FIELDS
from gitstoremeta.store import store
from gitstoremeta.update import update


HELP = (
    "Store, update, or apply metadata for files revisioned by git. "
    "Switch CWD to the top level of a git working tree before running."
)
FIELDS_HELP = (
    "Comma separated fields to store or apply: "
    + ", ".join(ALL_FIELDS[2:])
    + ". Defaults to the fields of the current snapshot. "
    "uid/gid are fallbacks when user/group are also set."
)

app = typer.Typer(
    help=HELP,
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console(soft_wrap=True)
err_console = Console(stderr=True, soft_wrap=True)


def _print_error(message: str) -> None:
    err_console.print(f"[red]error:[/red] {escape(message)}")


def _field_info(config: StoreMetaConfig) -> str:
    directory = "yes" if config.directory else "no"
    return f"fields: {', '.join(config.fields)}; directory: {directory}"


def select_action(*, store: bool, update: bool, apply: bool) -> str | None:
    """Pick one action; update wins over store, store over apply."""
    for name, requested in (("update", update), ("store", store), ("apply", apply)):
        if requested:
            return name
    return None


def _store(config: StoreMetaConfig) -> int:
    console.print(f"storing metadata to {escape(str(config.snapshot_path))} ...")
    git = GitRepository(config.root)
    try:
        git.ensure_top_level()
        console.print(_field_info(config))
        if config.dry_run:
            count = store(config, git)
        else:
            with console.status("Reading metadata..."):
                count = store(config, git)
    except OSError as exc:
        _print_error(f"unable to read metadata: {exc}")
        return 1
    except StoreMetaError as exc:
        _print_error(str(exc))
        return 1

    if not config.dry_run:
        console.print(
            f"[green]Stored[/green] {count} record(s) in {escape(str(config.snapshot_path))}"
        )
    return 0


def _update(config: StoreMetaConfig) -> int:
    target = escape(str(config.snapshot_path))
    console.print(f"updating metadata to {target} ...")
    git = GitRepository(config.root)
    try:
        git.ensure_top_level()
        console.print(_field_info(config))
        stats = update(config, git)
    except NoSnapshotError:
        _print_error(f"{config.snapshot_path} doesn't exist.")
        console.print("Run --store to create new.")
        return 1
    except UnsupportedSchemaError as exc:
        _print_error(str(exc))
        console.print("Run --store to create new.")
        return 1
    except MalformedSnapshotError as exc:
        _print_error(f"{config.snapshot_path} is malformatted: {exc}")
        console.print("Fix it or run --store to create new.")
        return 1
    except OSError as exc:
        _print_error(f"unable to read metadata: {exc}")
        return 1
    except StoreMetaError as exc:
        _print_error(str(exc))
        return 1

    if not config.dry_run:
        console.print(
            f"[green]Updated[/green] {target}: {stats.kept} kept, "
            f"{stats.refreshed} refreshed, {stats.dropped} dropped"
        )
    return 0


def _apply(config: StoreMetaConfig) -> int:
    console.print(f"applying metadata from {escape(str(config.snapshot_path))} ...")
    console.print(_field_info(config))
    try:
        result = apply(config)
    except NoSnapshotError:
        console.print(f"{escape(str(config.snapshot_path))} doesn't exist, skipped.")
        return 0
    except MalformedSnapshotError as exc:
        _print_error(f"{config.snapshot_path} is malformatted: {exc}")
        return 1
    except (UnsupportedSchemaError, FatalSetupError) as exc:
        _print_error(str(exc))
        return 1

    summary = (
        f"{result.processed} path(s) processed, {result.fields_applied} field(s) applied, "
        f"{result.skipped} skipped"
    )
    if result.rebuilt:
        summary += f", {result.rebuilt} symlink(s) rebuilt"
    if result.warnings:
        console.print(f"[yellow]Applied with {result.warnings} warning(s):[/yellow] {summary}")
    else:
        console.print(f"[green]Applied:[/green] {summary}")
    return 0


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"{APP_NAME} {APP_VERSION}")
        raise typer.Exit()


@app.command(help=HELP)
def main(
    ctx: typer.Context,
    store_flag: bool = typer.Option(
        False, "--store", "-s", help="Store the metadata for all files."
    ),
    update_flag: bool = typer.Option(
        False, "--update", "-u", help="Update the metadata for changed files."
    ),
    apply_flag: bool = typer.Option(
        False, "--apply", "-a", help="Apply the metadata stored in the data file to CWD."
    ),
    field: str | None = typer.Option(None, "--field", "-f", help=FIELDS_HELP),
    directory: bool = typer.Option(
        False, "--directory", "-d", help="Also store, update, or apply for directories."
    ),
    noexec: bool = typer.Option(
        False, "--noexec", "-n", help="Run a test and print the output, without real action."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Apply with verbose output."),
    target: str | None = typer.Option(None, "--target", "-t", help="Set another data file path."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Print the version and exit.",
    ),
) -> None:
    action = select_action(store=store_flag, update=update_flag, apply=apply_flag)
    if action is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=1)

    setup_logging(verbose, err_console)
    root = Path.cwd().resolve()
    data_file = snapshot_path(root, target)
    try:
        fields = resolve_fields(
            field,
            try_read_snapshot_fields(data_file),
            use_snapshot=action == "update",
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="'--field'") from exc

    config = StoreMetaConfig(
        root=root,
        snapshot_path=data_file,
        fields=fields,
        directory=directory,
        dry_run=noexec,
        verbose=verbose,
    )

    runners = {"store": _store, "update": _update, "apply": _apply}
    try:
        code = runners[action](config)
    except KeyboardInterrupt:
        err_console.print(
            "[yellow]Interrupted.[/yellow] The working tree may be partially updated."
        )
        code = 130
    raise typer.Exit(code=code)


if __name__ == "__main__":
    app()
