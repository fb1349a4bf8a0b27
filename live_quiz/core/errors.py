"""Exceptions raised by the live session engine.

Every error here is a recoverable, caller-visible condition. The server layer
maps them to HTTP responses; nothing in this module should ever take the
process down.
"""

from __future__ import annotations


class LiveSessionError(Exception):
    """Base class for live session errors."""


class SessionNotFound(LiveSessionError):
    """No live session is registered under the given join code."""


class Forbidden(LiveSessionError):
    """Caller is not the host of the session."""


class SessionEnded(LiveSessionError):
    """The session has ended and no longer accepts participants."""


class AlreadyEnded(LiveSessionError):
    """The session has already ended and cannot be advanced."""


class NoActiveQuestion(LiveSessionError):
    """No question is currently open for answers."""


class NotAJoinedParticipant(LiveSessionError):
    """The student has not joined this session."""


class AlreadyAnswered(LiveSessionError):
    """The student already answered the current question."""


class QuizNotFound(LiveSessionError):
    """The requested quiz does not exist."""


class QuizNotLive(LiveSessionError):
    """The quiz cannot be run live (not published or has no questions)."""


class MalformedAnswerPayload(ValueError):
    """Structured answer could not be parsed. Converted to an incorrect score by the scorer."""
