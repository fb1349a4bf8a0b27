"""Network configuration constants for the live quiz server."""

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 8000

# Per-subscriber push buffer. A subscriber that cannot accept a frame within
# the write timeout is dropped from the session.
SUBSCRIBER_BUFFER_SIZE: int = 256
SUBSCRIBER_WRITE_TIMEOUT_SECONDS: float = 0.5
HEARTBEAT_INTERVAL_SECONDS: float = 15.0
