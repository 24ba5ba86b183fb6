"""Console-script entry point for ``treesync``.

The synchronizer itself only needs dulwich; click is an optional extra, so
the import is deferred until the command actually runs.
"""

import sys


def main(argv=None):
    try:
        from .cli import main as cli_main
    except ImportError as exc:
        missing = exc.name or "click"
        print(
            f"treesync: the command line interface needs '{missing}', "
            "which is not installed.\n"
            "Install it with:  pip install 'treesync[cli]'",
            file=sys.stderr,
        )
        raise SystemExit(1)
    cli_main(args=argv, prog_name="treesync")
