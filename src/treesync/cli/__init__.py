"""treesync CLI: make a destination tree match a source tree."""

from ._sync import main  # noqa: F401
