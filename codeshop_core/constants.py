"""Global constants for the Codeshop bot."""

from __future__ import annotations

# ============================================================================
# Database
# ============================================================================

DATABASE_MAX_RETRIES = 5
DATABASE_CONNECT_TIMEOUT_SECONDS = 5.0
DEFAULT_DATA_DIR = "data"

# ============================================================================
# Live Displays
# ============================================================================

DEFAULT_REFRESH_INTERVAL_SECONDS = 60
DEFAULT_EDIT_DELAY_SECONDS = 2.0  # spacing between message edits
DEFAULT_SWEEP_STAGGER_SECONDS = 5.0  # gap between stock and leaderboard sweeps
DEFAULT_LEADERBOARD_LIMIT = 10

DEFAULT_STOCK_EMPTY_TEXT = "No products available yet. Check back soon!"
DEFAULT_LEADERBOARD_EMPTY_TEXT = "No purchases yet. Be the first buyer!"

STOCK_DISPLAY_TITLE = "📦 Live Stock"
LEADERBOARD_DISPLAY_TITLE = "🏆 Top Buyers"

DEFAULT_STOCK_COLOR = 0x2ECC71
DEFAULT_LEADERBOARD_COLOR = 0xF1C40F

# ============================================================================
# Orders
# ============================================================================

ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_CANCELLED = "cancelled"

MAX_ORDER_QUANTITY = 100
RECENT_ORDERS_LIMIT = 10

# ============================================================================
# Time Conversion
# ============================================================================

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600

# ============================================================================
# Moderation
# ============================================================================

MAX_PURGE_MESSAGES = 100
MAX_TIMEOUT_MINUTES = 40320  # 28 days, Discord limit

# ============================================================================
# Embed Limits (Discord API limits)
# ============================================================================

EMBED_DESCRIPTION_MAX_LENGTH = 4096
EMBED_FOOTER_MAX_LENGTH = 2048
