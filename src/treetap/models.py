"""Centralized defaults and timing constants."""

# Default screen size (width, height) used when no host geometry is configured
DEFAULT_SCREEN_SIZE = (1080, 2400)

# Duration of a synthesized tap gesture (ms).  Mirrors the platform tap timeout.
DEFAULT_TAP_TIMEOUT_MS = 100

# Long-press duration (ms) for both the privileged and gesture paths
LONG_CLICK_DURATION_MS = 500

# Scroll-up gesture duration window (ms): base + randint(0, jitter - 1)
SCROLL_DURATION_BASE_MS = 200
SCROLL_DURATION_JITTER_MS = 100

# Executor
DEFAULT_MAX_WORKERS = 4
DEFAULT_MAX_RETRIES = 1  # total attempts; 1 means no retry
DEFAULT_RETRY_DELAY_MS = 1000

# Action name used when a request does not name one
DEFAULT_ACTION = "click"
