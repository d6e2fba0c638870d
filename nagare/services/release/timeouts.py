from __future__ import annotations

# GH / API operations
GH_TIMEOUT_SECONDS = 60.0

# Release creation uploads the notes and may wait on GitHub
GH_RELEASE_TIMEOUT_SECONDS = 3 * 60.0

# Idempotent GH read retry policy
GH_READ_RETRY_ATTEMPTS = 3
GH_READ_RETRY_DELAY_SECONDS = 1.0
