"""Git access for the release pipeline."""

from .repository import GitCommit, GitError, Repository

__all__ = ["GitCommit", "GitError", "Repository"]
