"""Process-wide registry of live sessions keyed by join code."""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
import random
from threading import Event, Lock, Thread
from typing import Callable

from live_quiz.constants.quiz_constants import (
    ENDED_SESSION_GRACE_SECONDS,
    IDLE_SESSION_TIMEOUT_SECONDS,
    JOIN_CODE_MAX,
    JOIN_CODE_MIN,
    SWEEP_INTERVAL_SECONDS,
)
from live_quiz.core.errors import SessionNotFound
from live_quiz.core.models import LiveQuestion, LiveStatus
from live_quiz.core.services.live_session import LiveSession, utc_now

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Owns creation, lookup and expiry of live sessions.

    Sessions are removed when their post-end grace period runs out, or when
    nothing has happened in them for ``idle_timeout_seconds``. An idle session
    that has not ended is ended first, so its results are finalized. ``sweep``
    does both and is run periodically by the sweeper thread.
    """

    def __init__(
        self,
        grace_seconds: float = ENDED_SESSION_GRACE_SECONDS,
        idle_timeout_seconds: float = IDLE_SESSION_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
    ) -> None:
        self._lock = Lock()
        self._sessions: dict[str, LiveSession] = {}
        self._removal_deadlines: dict[str, datetime] = {}
        self._grace = timedelta(seconds=grace_seconds)
        self._idle_timeout = timedelta(seconds=idle_timeout_seconds)
        self._clock = clock
        self._rng = rng or random.Random()
        self._sweeper: Thread | None = None
        self._stop_sweeper = Event()

    def create(
        self,
        quiz_id: str,
        host_user_id: str,
        questions: tuple[LiveQuestion, ...],
        time_budget_seconds: float,
        on_ended: Callable[[LiveSession], None] | None = None,
    ) -> str:
        """Register a new waiting session and return its join code."""
        with self._lock:
            join_code = self._unused_join_code()
            self._sessions[join_code] = LiveSession(
                join_code=join_code,
                quiz_id=quiz_id,
                host_user_id=host_user_id,
                questions=questions,
                time_budget_seconds=time_budget_seconds,
                on_ended=on_ended,
                clock=self._clock,
            )
        logger.info("Created live session %s for quiz %s", join_code, quiz_id)
        return join_code

    def get(self, join_code: str) -> LiveSession:
        with self._lock:
            session = self._sessions.get(join_code)
        if session is None:
            raise SessionNotFound(f"Session {join_code} not found.")
        return session

    def remove(self, join_code: str) -> None:
        with self._lock:
            session = self._sessions.pop(join_code, None)
            self._removal_deadlines.pop(join_code, None)
        if session is not None:
            session.channel.close_all()
            logger.info("Removed live session %s", join_code)

    def schedule_removal(self, join_code: str, delay_seconds: float | None = None) -> None:
        """Remove the session once ``delay_seconds`` (default: the grace period) have passed."""
        delay = self._grace if delay_seconds is None else timedelta(seconds=delay_seconds)
        with self._lock:
            if join_code in self._sessions:
                self._removal_deadlines[join_code] = self._clock() + delay

    def sweep(self, now: datetime | None = None) -> list[str]:
        """Drop expired sessions and return their join codes."""
        now = now or self._clock()
        with self._lock:
            expired = [
                code
                for code, session in self._sessions.items()
                if self._is_expired(code, session, now)
            ]
        for code in expired:
            self._end_if_running(code)
            self.remove(code)
        if expired:
            logger.info("Swept %d expired live session(s)", len(expired))
        return expired

    def _end_if_running(self, join_code: str) -> None:
        # Idle sessions still get their final leaderboard and stored results.
        with self._lock:
            session = self._sessions.get(join_code)
        if session is not None and session.status is not LiveStatus.ENDED:
            logger.info("Ending idle live session %s", join_code)
            session.expire()

    def active_codes(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, join_code: object) -> bool:
        with self._lock:
            return join_code in self._sessions

    # --- Background sweeper ---

    def start_sweeper(self, interval_seconds: float = SWEEP_INTERVAL_SECONDS) -> Thread:
        """Run ``sweep`` every ``interval_seconds`` in a daemon thread."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return self._sweeper
        self._stop_sweeper.clear()

        def run_sweeper() -> None:
            while not self._stop_sweeper.wait(interval_seconds):
                try:
                    self.sweep()
                except Exception:
                    logger.exception("Live session sweep failed")

        self._sweeper = Thread(target=run_sweeper, name="LiveSessionSweeper", daemon=True)
        self._sweeper.start()
        return self._sweeper

    def stop_sweeper(self) -> None:
        self._stop_sweeper.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None

    def close(self) -> None:
        """Stop the sweeper and drop every session, closing their subscribers."""
        self.stop_sweeper()
        for code in self.active_codes():
            self.remove(code)

    # --- Internals (lock held) ---

    def _unused_join_code(self) -> str:
        while True:
            code = str(self._rng.randint(JOIN_CODE_MIN, JOIN_CODE_MAX))
            if code not in self._sessions:
                return code

    def _is_expired(self, code: str, session: LiveSession, now: datetime) -> bool:
        deadline = self._removal_deadlines.get(code)
        if deadline is not None and now >= deadline:
            return True
        return now - session.last_activity_at >= self._idle_timeout
