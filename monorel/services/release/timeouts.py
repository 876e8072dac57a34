from __future__ import annotations

# GH / API operations
GH_TIMEOUT_SECONDS = 60.0

# Local git operations (status, rev-parse, tag, add, commit, revert)
GIT_TIMEOUT_SECONDS = 30.0

# Network-bound git operations (push, tag deletion on the remote)
GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0

# Configured build/test commands and per-platform binary builds
BUILD_TIMEOUT_SECONDS = 30 * 60.0

# Registry writes (npm publish, docker push, vsce publish)
PUBLISH_TIMEOUT_SECONDS = 10 * 60.0

# Registry reads used for post-publish verification
VERIFY_TIMEOUT_SECONDS = 60.0

# Waiting on a dispatched remote release workflow
WORKFLOW_TIMEOUT_SECONDS = 60 * 60.0

# Idempotent GH read retry policy
GH_READ_RETRY_ATTEMPTS = 3
GH_READ_RETRY_DELAY_SECONDS = 1.0

# Registry propagation: verification retry policy
VERIFY_RETRY_ATTEMPTS = 3
VERIFY_RETRY_DELAY_SECONDS = 5.0

# Attaching release assets (binary archives)
GH_UPLOAD_TIMEOUT_SECONDS = 10 * 60.0
