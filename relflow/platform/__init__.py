"""Platform helpers: subprocesses and files."""

from .files import atomic_write_text, sha256_file
from .process import ProcessError, run, run_cancellable

__all__ = [
    "ProcessError",
    "atomic_write_text",
    "run",
    "run_cancellable",
    "sha256_file",
]
