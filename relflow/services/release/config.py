from __future__ import annotations

CONFIG_FILE_NAME = "relflow.toml"

STABLE_BRANCH = "main"
BETA_BRANCH = "dev"
RC_BRANCH_PREFIX = "release/"

# Commits carrying this marker are never classified (the version-bump commit).
SKIP_RELEASE_MARKER = "[skip release]"
RELEASE_COMMIT_TEMPLATE = "chore(release): {version} " + SKIP_RELEASE_MARKER

CHANGELOG_TITLE = "# Changelog"

BUILD_LOG_DIR = ".relflow/logs"
