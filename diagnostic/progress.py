"""Progress aggregation for participant sessions and whole interviews.

Participant progress grows with the conversation but is capped below
100: only an explicit finish marks a session complete.  A
multi-participant interview's progress is the mean of its planned
participants' progress, recomputed from the Session documents (the
source of truth) on every update.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable

from diagnostic.models.state import Interview, Participant, Status
from diagnostic.repository import InterviewRepository, SessionScope
from diagnostic.settings import PROGRESS_CAP, PROGRESS_PER_EXCHANGE
from diagnostic.store.document_store import SERVER_TIMESTAMP

logger = logging.getLogger(__name__)


def compute_progress(turn_count: int, forced_complete: bool = False) -> int:
    """Percentage for a session with ``turn_count`` visible turns.

    ``min(round(turn_count / 2 * 5), 95)`` with half-up rounding, or
    exactly 100 once the participant has finished.
    """
    if forced_complete:
        return 100
    if turn_count < 0:
        raise ValueError("turn_count must be >= 0")
    raw = turn_count * PROGRESS_PER_EXCHANGE / 2
    return min(math.floor(raw + 0.5), PROGRESS_CAP)


def aggregate_progress(values: Iterable[float]) -> float:
    """Arithmetic mean of participant progress (0 for no participants)."""
    values = list(values)
    if not values:
        return 0.0
    return round(sum(values) / len(values), 2)


def aggregate_status(mean: float, any_started: bool) -> Status:
    if mean == 100:
        return Status.COMPLETED
    return Status.ACTIVE if any_started else Status.PENDING


@dataclass
class AggregateSnapshot:
    progress: float
    status: Status
    participants: list[Participant] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "progress": self.progress,
            "status": self.status.value,
            "participants": [p.to_doc() for p in self.participants],
        }


@dataclass
class ProgressSnapshot:
    """Outcome of recording progress for one session."""

    progress: float
    status: Status
    completed_now: bool = False
    aggregate: AggregateSnapshot | None = None
    aggregate_completed_now: bool = False


class ProgressAggregator:
    """Writes session progress and keeps interview aggregates in sync."""

    def __init__(self, repository: InterviewRepository) -> None:
        self.repository = repository

    def record(
        self,
        interview_id: str,
        scope: SessionScope,
        turn_count: int,
        forced: bool = False,
    ) -> ProgressSnapshot:
        """Persist progress for ``scope`` and return the new state.

        Progress never decreases and a completed session stays completed,
        so recording twice is harmless.
        """
        interview = self.repository.get_interview(interview_id)
        if scope.participant is None:
            return self._record_solo(interview, turn_count, forced)
        return self._record_participant(interview, scope, turn_count, forced)

    def _record_solo(self, interview: Interview, turn_count: int, forced: bool) -> ProgressSnapshot:
        if interview.status is Status.COMPLETED:
            return ProgressSnapshot(progress=interview.progress, status=Status.COMPLETED)

        progress = max(interview.progress, compute_progress(turn_count, forced))
        status = Status.COMPLETED if forced else Status.ACTIVE
        self.repository.update_interview(
            interview.id,
            {"progress": progress, "status": status.value, "forced_complete": forced},
        )
        if forced:
            logger.info("Solo interview %s completed", interview.id)
        return ProgressSnapshot(progress=progress, status=status, completed_now=forced)

    def _record_participant(
        self,
        interview: Interview,
        scope: SessionScope,
        turn_count: int,
        forced: bool,
    ) -> ProgressSnapshot:
        session = self.repository.get_session(interview.id, scope.participant or "")
        if session is not None and session.status is Status.COMPLETED:
            return ProgressSnapshot(
                progress=session.progress,
                status=Status.COMPLETED,
                aggregate=self.recompute(interview.id),
            )

        previous = session.progress if session else 0.0
        progress = max(previous, compute_progress(turn_count, forced))
        status = Status.COMPLETED if forced else Status.ACTIVE
        self.repository.update_session(
            scope,
            {
                "progress": progress,
                "status": status.value,
                "forced_complete": forced,
                "last_active": SERVER_TIMESTAMP,
            },
        )
        was_complete = interview.status is Status.COMPLETED
        aggregate = self.recompute(interview.id)
        if forced:
            logger.info("Participant %s finished interview %s", scope.participant, interview.id)
        return ProgressSnapshot(
            progress=progress,
            status=status,
            completed_now=forced,
            aggregate=aggregate,
            aggregate_completed_now=(
                not was_complete and aggregate.status is Status.COMPLETED
            ),
        )

    def recompute(self, interview_id: str) -> AggregateSnapshot:
        """Rebuild the interview's participant cache and mean from sessions.

        Safe to call at any time; the result depends only on persisted
        Session documents.
        """
        interview = self.repository.get_interview(interview_id)
        if not interview.is_multi:
            return AggregateSnapshot(progress=interview.progress, status=interview.status)

        sessions = self.repository.list_sessions(interview_id)
        participants: list[Participant] = []
        for planned in interview.participants:
            session = sessions.get(planned.contact.strip().lower())
            participants.append(
                Participant(
                    name=planned.name,
                    role=planned.role,
                    contact=planned.contact,
                    status=session.status if session else Status.PENDING,
                    progress=session.progress if session else 0.0,
                )
            )

        mean = aggregate_progress(p.progress for p in participants)
        status = aggregate_status(mean, any_started=bool(sessions))
        self.repository.update_interview(
            interview_id,
            {
                "participants": [p.to_doc() for p in participants],
                "progress": mean,
                "status": status.value,
            },
        )
        return AggregateSnapshot(progress=mean, status=status, participants=participants)
