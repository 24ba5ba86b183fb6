"""Shared helpers and option decorators for the CLI."""

from __future__ import annotations

import logging

import click

from ..gitlocation import open_git_location
from ..location import Location, local_location
from ..exceptions import TreeSyncError
from ..sync import SyncActionKind, SyncReport


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )


def _store_repo(ctx, param, value):
    """Click callback: store --repo value in the context."""
    ctx.ensure_object(dict)
    if value is not None:
        ctx.obj["repo_path"] = value
    return value


def _repo_option(f):
    """Shared --repo/-r option decorator."""
    return click.option(
        "--repo", "-r", type=click.Path(), envvar="TREESYNC_REPO",
        help="Bare git repository to read ':path' sources from (or set TREESYNC_REPO).",
        expose_value=False, callback=_store_repo, is_eager=True,
    )(f)


def _is_repo_path(raw: str) -> bool:
    return raw.startswith(":")


def _split_ref_path(raw: str) -> tuple[str | None, str]:
    """Split ``[ref]:path`` into ``(ref or None, path)``."""
    ref, _, path = raw.partition(":")
    return (ref or None), path


def _resolve_source(ctx, raw: str) -> Location:
    """Return the location for the SOURCE argument.

    With --repo, ``:path`` and ``ref:path`` address the repository;
    anything else is a local path or ``file://`` URI.
    """
    repo = ctx.obj.get("repo_path")
    if repo and ":" in raw and not raw.startswith("file://"):
        ref, path = _split_ref_path(raw)
        try:
            return open_git_location(repo, ref, path)
        except TreeSyncError as exc:
            raise click.ClickException(f"Failed to open the source: {exc}")
    if _is_repo_path(raw):
        raise click.ClickException(
            "No repository specified. Use --repo or set TREESYNC_REPO."
        )
    return _resolve_local(raw, "source")


def _resolve_destination(ctx, raw: str) -> Location:
    if _is_repo_path(raw):
        raise click.ClickException(
            "The destination must be a local path; repository trees are read-only"
        )
    return _resolve_local(raw, "destination")


def _resolve_local(raw: str, what: str) -> Location:
    try:
        return local_location(raw)
    except TreeSyncError as exc:
        raise click.ClickException(f"Invalid {what}: {exc}")


def _echo_report(report: SyncReport) -> None:
    """Print each recorded action on stdout, in the order it happened."""
    for action in report.actions:
        if action.action == SyncActionKind.DELETE:
            click.echo(f"Deleted `{action.path}'.")
        elif action.action == SyncActionKind.SKIP:
            click.echo(f"Skipping non-regular file `{action.path}'.")
        else:
            click.echo(action.path)
    for warning in report.warnings:
        click.echo(f"Warning: {warning.path}: {warning.error}", err=True)
