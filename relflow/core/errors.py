"""Error codes for CLI exit status.

This module provides a simple enum of error codes that map to shell exit codes.
The release pipeline reports every abort through one of these values so CI
runners can tell a resolution problem from a broken build or a failed upload.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    These values are used as process exit codes and should remain stable:
    - 0: Success, including "no release needed"
    - 1: Classification or version resolution error
    - 2: Build failure (lint/test gate included)
    - 3: Publish failure
    - 4: Configuration error
    - 130: Cancelled by the operator
    """

    OK = 0
    RESOLUTION_ERROR = 1
    BUILD_ERROR = 2
    PUBLISH_ERROR = 3
    CONFIG_ERROR = 4
    CANCELLED = 130

    def __str__(self) -> str:
        """Return human-readable name."""
        return self.name.lower().replace("_", " ")
