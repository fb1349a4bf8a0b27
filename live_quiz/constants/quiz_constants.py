"""Quiz and live session constants shared across core and server layers."""

DEFAULT_QUIZ_TIME_LIMIT_MINUTES: int = 30
PUBLISHED_STATUS: str = "published"
HOST_ROLES: tuple[str, ...] = ("teacher", "admin")

JOIN_CODE_MIN: int = 100000
JOIN_CODE_MAX: int = 999999

ENDED_SESSION_GRACE_SECONDS: float = 60.0
IDLE_SESSION_TIMEOUT_SECONDS: float = 2 * 60 * 60
SWEEP_INTERVAL_SECONDS: float = 30.0

DEFAULT_PASS_PERCENTAGE: int = 40
SHORT_ANSWER_TOKEN_MIN_LENGTH: int = 4
