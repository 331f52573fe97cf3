"""Diagnostic logging setup.

Modules log through ``logging.getLogger(__name__)``; the CLI routes those
records to stderr through Rich so they do not interleave with the release
summary printed on stdout.
"""

from __future__ import annotations

import logging

__all__ = ["configure_logging"]

_FORMAT = "%(name)s: %(message)s"


def configure_logging(*, verbose: bool = False) -> None:
    """Install a RichHandler on the ``relflow`` logger.

    Args:
        verbose: Emit DEBUG records (subprocess commands, job transitions).
    """
    from rich.console import Console
    from rich.logging import RichHandler

    root = logging.getLogger("relflow")
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.propagate = False
