"""Participant roster and leaderboard for a live session."""

from __future__ import annotations

from datetime import datetime

from live_quiz.core.models import AnswerRecord, LeaderboardRow, Participant


class Scoreboard:
    """Tracks joined students and their running scores in join order."""

    def __init__(self) -> None:
        self._participants: dict[str, Participant] = {}

    def register(self, user_id: str, name: str, joined_at: datetime) -> tuple[Participant, bool]:
        """Register a student. Returns the participant and whether it was new."""
        existing = self._participants.get(user_id)
        if existing is not None:
            return existing, False
        participant = Participant(user_id=user_id, name=name, joined_at=joined_at)
        self._participants[user_id] = participant
        return participant, True

    def get(self, user_id: str) -> Participant | None:
        return self._participants.get(user_id)

    def record_answer(self, user_id: str, record: AnswerRecord, marks: int) -> Participant:
        participant = self._participants[user_id]
        participant.answers.append(record)
        participant.score += marks
        return participant

    def participants(self) -> list[Participant]:
        return list(self._participants.values())

    def count(self) -> int:
        return len(self._participants)

    def answered_count(self, question_index: int) -> int:
        return sum(1 for p in self._participants.values() if p.has_answered(question_index))

    def leaderboard(self) -> list[LeaderboardRow]:
        """Rank by score descending. ``sorted`` is stable, so ties keep join order."""
        ranked = sorted(self._participants.values(), key=lambda p: -p.score)
        return [
            LeaderboardRow(rank=index + 1, user_id=p.user_id, name=p.name, score=p.score)
            for index, p in enumerate(ranked)
        ]
