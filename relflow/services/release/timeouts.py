from __future__ import annotations

# GH / API operations
GH_TIMEOUT_SECONDS = 60.0
GH_UPLOAD_TIMEOUT_SECONDS = 30 * 60.0

# Idempotent GH read retry policy (writes are never retried)
GH_READ_RETRY_ATTEMPTS = 3
GH_READ_RETRY_DELAY_SECONDS = 1.0

# Lint/test gate, per command
VALIDATE_TIMEOUT_SECONDS = 30 * 60.0
