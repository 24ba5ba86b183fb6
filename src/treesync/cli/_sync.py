"""The treesync command."""

from __future__ import annotations

import click

from ..exceptions import TreeSyncError
from ..snapshot import build, format_tree
from ..sync import CompareMode, SyncOptions, SyncReport, synchronize
from ._helpers import (
    _configure_logging,
    _echo_report,
    _repo_option,
    _resolve_destination,
    _resolve_source,
    _status,
)


class _SyncCommand(click.Command):
    """Command whose usage errors exit with status 1 like every other failure."""

    def parse_args(self, ctx, args):
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as exc:
            exc.exit_code = 1
            raise


@click.command(cls=_SyncCommand)
@click.argument("source")
@click.argument("destination")
@click.option("--size-only", "-s", "size_only", is_flag=True, default=False,
              help="Compare files by size only.")
@click.option("--checksum", "-c", is_flag=True, default=False,
              help="Compare files by SHA-256 checksum only.")
@click.option("--delete", "-d", is_flag=True, default=False,
              help="Delete destination entries missing from the source, "
                   "and allow files to replace directories.")
@_repo_option
@click.option("--show-tree", "show_tree", is_flag=True, default=False,
              help="Print the destination tree after synchronizing.")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output on stderr.")
@click.pass_context
def main(ctx, source, destination, size_only, checksum, delete, show_tree, verbose):
    """Make DESTINATION identical to SOURCE (one-way).

    Files are compared by size and modification time unless --size-only or
    --checksum is given; differing files are copied whole.

    \b
    Examples:
      treesync ./photos /mnt/backup/photos
      treesync --checksum --delete ./site /srv/www
      treesync --repo data.git main:docs ./docs

    \b
    With --repo, a SOURCE written as ':path' or 'ref:path' is read from
    that bare git repository.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _configure_logging(verbose)

    if size_only and checksum:
        raise click.ClickException("--size-only and --checksum are mutually exclusive")
    if checksum:
        compare = CompareMode.CHECKSUM_ONLY
    elif size_only:
        compare = CompareMode.SIZE_ONLY
    else:
        compare = CompareMode.SIZE_AND_TIME
    options = SyncOptions(compare=compare, delete=delete)

    dest_location = _resolve_destination(ctx, destination)
    with _resolve_source(ctx, source) as src_location:
        _status(ctx, "Examining source directory tree...")
        try:
            src = build(src_location, options.want_checksum)
        except TreeSyncError as exc:
            raise click.ClickException(f"Failed to investigate the source: {exc}")

        _status(ctx, "Examining destination directory tree...")
        try:
            dest = build(dest_location, options.want_checksum)
        except TreeSyncError as exc:
            raise click.ClickException(f"Failed to investigate the destination: {exc}")

        _status(ctx, f"Synchronizing ({compare}{', delete' if delete else ''})...")
        report = SyncReport()
        try:
            dest = synchronize(dest, src, options, report)
        except TreeSyncError as exc:
            _echo_report(report)
            raise click.ClickException(f"Synchronization failed: {exc}")
    _echo_report(report)

    if report.in_sync:
        _status(ctx, "Already in sync.")
    else:
        _status(ctx, f"{report.total} change(s).")
    if show_tree:
        click.echo(format_tree(dest))
