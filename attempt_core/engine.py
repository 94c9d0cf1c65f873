# attempt_core/engine.py
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging, uuid

from . import config
from .entitlements import EntitlementCheck, is_entitled
from .errors import (
    ActiveAttemptExists,
    AttemptNotActive,
    AttemptNotFound,
    AttemptNotSubmitted,
    Conflict,
    Forbidden,
    InvalidAnswer,
    NotFound,
    PaperNotAvailable,
    PaperNotFound,
    SubscriptionRequired,
)
from .question_bank import QuestionBank
from .scoring import score_attempt
from .store import AttemptStore
from .types import (
    IN_PROGRESS,
    SUBMITTED,
    Ack,
    Answer,
    AssessmentAttempt,
    AssessmentItem,
    AssessmentPaper,
    Identity,
)

log = logging.getLogger(__name__)

Clock = Callable[[], datetime]
# (item, answer) -> advisory {"marks", "rationale"} or None
MarkingAssistant = Callable[[AssessmentItem, Optional[Answer]], Optional[Dict[str, Any]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_iso(raw: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(raw)
    except (TypeError, ValueError):
        return None


def _check_time(value: Optional[int]) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise InvalidAnswer("timeUsedSeconds must be a non-negative number")
    return int(value)


class AttemptEngine:
    """Lifecycle of timed attempts: start/resume, answer, heartbeat, submit.

    Every mutating call re-checks the time budget, so an attempt whose
    reported time has run out is submitted on the spot; there is no
    background sweeper. All writes go through ``AttemptStore.update`` and are
    atomic per attempt.
    """

    def __init__(
        self,
        store: AttemptStore,
        bank: QuestionBank,
        *,
        entitlement: EntitlementCheck = is_entitled,
        clock: Clock = _utcnow,
        policy: str | None = None,
        assistant: MarkingAssistant | None = None,
    ) -> None:
        self.store = store
        self.bank = bank
        self.entitlement = entitlement
        self.clock = clock
        self.policy = policy or config.SHORT_ANSWER_POLICY
        self.assistant = assistant

    # ---- helpers ----
    def _now_iso(self) -> str:
        return self.clock().isoformat()

    def _require_entitled(self, identity: Identity) -> None:
        if not self.entitlement(identity):
            log.info("entitlement rejected user=%s", identity.user_id)
            raise SubscriptionRequired()

    def _paper(self, paper_id: str) -> AssessmentPaper:
        paper = self.bank.get_paper(paper_id)
        if paper is None:
            raise PaperNotFound()
        return paper

    def _load(self, identity: Identity, attempt_id: str, *, staff_may_read: bool = False) -> AssessmentAttempt:
        attempt = self.store.get(attempt_id)
        if attempt is None:
            raise AttemptNotFound()
        if attempt.student_id == identity.user_id:
            return attempt
        if staff_may_read and identity.is_staff:
            return attempt
        raise Forbidden("You can only access your own attempts")

    def _elapsed_seconds(self, attempt: AssessmentAttempt) -> int:
        started = _parse_iso(attempt.started_at)
        if started is None:
            return attempt.time_used_seconds
        return max(0, int((self.clock() - started).total_seconds()))

    @staticmethod
    def _advance(attempt: AssessmentAttempt, reported: Optional[int]) -> None:
        # out-of-order heartbeats must never roll the clock back
        if reported is not None:
            attempt.time_used_seconds = max(attempt.time_used_seconds, reported)

    def _finalise(
        self,
        attempt: AssessmentAttempt,
        paper: AssessmentPaper,
        *,
        auto: bool,
        reported: Optional[int],
    ) -> None:
        if reported is None:
            reported = self._elapsed_seconds(attempt)
        used = max(attempt.time_used_seconds, reported)
        if attempt.is_timed:
            used = min(used, attempt.duration_seconds)
        attempt.time_used_seconds = used
        attempt.status = SUBMITTED
        attempt.submitted_at = self._now_iso()
        attempt.auto_submitted = bool(auto)
        attempt.score, _ = score_attempt(attempt, paper, self.bank, self.policy)
        log.info(
            "attempt submitted id=%s auto=%s time=%s/%s correct=%s/%s",
            attempt.id, attempt.auto_submitted, used, attempt.duration_seconds,
            attempt.score.correct, attempt.score.total_questions,
        )

    def _validated_answer(
        self,
        paper: AssessmentPaper,
        question_id: str,
        selected_index: Optional[int],
        text_answer: Optional[str],
    ) -> Tuple[Optional[int], Optional[str]]:
        item = self.bank.item_in_paper(paper, question_id)
        if item is None:
            raise InvalidAnswer("Question is not part of this paper")
        if selected_index is not None and text_answer is not None:
            raise InvalidAnswer("Provide either selectedIndex or textAnswer, not both")
        if item.type == "mcq":
            if text_answer is not None:
                raise InvalidAnswer("Multiple-choice questions take selectedIndex")
            if selected_index is not None:
                if isinstance(selected_index, bool) or not isinstance(selected_index, int) or selected_index < 0:
                    raise InvalidAnswer("selectedIndex must be null or a non-negative number")
                if item.options and selected_index >= len(item.options):
                    raise InvalidAnswer("selectedIndex is out of range for this question")
            return selected_index, None
        if selected_index is not None:
            raise InvalidAnswer("Free-text questions take textAnswer")
        if text_answer is not None:
            if not isinstance(text_answer, str):
                raise InvalidAnswer("textAnswer must be a string or null")
            text_answer = text_answer.strip()
            if len(text_answer) > config.TEXT_ANSWER_MAX_LEN:
                raise InvalidAnswer(f"textAnswer exceeds {config.TEXT_ANSWER_MAX_LEN} characters")
        return None, text_answer

    # ---- lifecycle ----
    def start_or_resume(self, identity: Identity, paper_id: str) -> Tuple[AssessmentAttempt, bool]:
        """Return the caller's in-progress attempt for ``paper_id``, creating it if needed.

        The boolean is True when a new attempt was created.
        """
        if identity.role != "student":
            raise Forbidden("Only students can start assessment attempts")
        self._require_entitled(identity)
        paper = self._paper(paper_id)
        if not paper.is_published:
            raise PaperNotAvailable()

        existing = self.store.find_in_progress(identity.user_id, paper.id)
        if existing is not None:
            log.info("attempt resumed id=%s user=%s paper=%s", existing.id, identity.user_id, paper.id)
            return existing, False

        attempt = AssessmentAttempt(
            id=uuid.uuid4().hex,
            paper_id=paper.id,
            student_id=identity.user_id,
            status=IN_PROGRESS,
            started_at=self._now_iso(),
            duration_seconds=max(0, int(paper.duration_seconds or 0)),
            time_used_seconds=0,
        )
        try:
            created = self.store.create(attempt)
        except ActiveAttemptExists as exc:
            # lost a creation race; hand back the winner
            winner = self.store.get(exc.existing_id)
            if winner is None or not winner.is_active:
                raise Conflict() from exc
            log.info("attempt creation race resolved to id=%s user=%s", winner.id, identity.user_id)
            return winner, False
        log.info("attempt started id=%s user=%s paper=%s duration=%s",
                 created.id, identity.user_id, paper.id, created.duration_seconds)
        return created, True

    def get_in_progress(self, identity: Identity, paper_id: str) -> AssessmentAttempt:
        attempt = self.store.find_in_progress(identity.user_id, paper_id)
        if attempt is None:
            raise NotFound()
        return attempt

    def get_attempt(self, identity: Identity, attempt_id: str) -> AssessmentAttempt:
        return self._load(identity, attempt_id, staff_may_read=True)

    def list_attempts(
        self,
        identity: Identity,
        *,
        paper_id: str | None = None,
        status: str | None = None,
        student_id: str | None = None,
    ) -> List[AssessmentAttempt]:
        if status is not None and status not in (IN_PROGRESS, SUBMITTED):
            status = None
        owner = student_id if identity.is_staff else identity.user_id
        return self.store.list(student_id=owner, paper_id=paper_id, status=status)

    def record_answer(
        self,
        identity: Identity,
        attempt_id: str,
        question_id: str,
        *,
        selected_index: Optional[int] = None,
        text_answer: Optional[str] = None,
        time_used_seconds: Optional[int] = None,
    ) -> Ack:
        """Upsert one answer and advance the clock.

        When the advanced clock reaches the budget the answer is dropped and
        the attempt is auto-submitted instead; the ack then has
        ``accepted=False`` and ``status="submitted"``.
        """
        reported = _check_time(time_used_seconds)
        current = self._load(identity, attempt_id)
        if not current.is_active:
            raise AttemptNotActive()
        self._require_entitled(identity)
        paper = self._paper(current.paper_id)
        selected_index, text_answer = self._validated_answer(paper, question_id, selected_index, text_answer)
        outcome = {"accepted": True}

        def apply(attempt: AssessmentAttempt) -> None:
            if not attempt.is_active:
                raise AttemptNotActive()
            self._advance(attempt, reported)
            if attempt.time_exhausted():
                outcome["accepted"] = False
                log.warning("answer rejected, time exhausted id=%s q=%s", attempt.id, question_id)
                self._finalise(attempt, paper, auto=True, reported=attempt.time_used_seconds)
                return
            attempt.answers[str(question_id)] = Answer(
                question_id=str(question_id),
                selected_index=selected_index,
                text_answer=text_answer,
                answered_at=self._now_iso(),
            )

        saved = self.store.update(current.id, apply)
        return Ack(
            attempt_id=saved.id,
            status=saved.status,
            time_used_seconds=saved.time_used_seconds,
            auto_submitted=saved.auto_submitted,
            accepted=outcome["accepted"],
        )

    def heartbeat(self, identity: Identity, attempt_id: str, time_used_seconds: int) -> Ack:
        reported = _check_time(time_used_seconds)
        current = self._load(identity, attempt_id)
        if not current.is_active:
            raise AttemptNotActive()
        paper = self._paper(current.paper_id)

        def apply(attempt: AssessmentAttempt) -> None:
            if not attempt.is_active:
                raise AttemptNotActive()
            self._advance(attempt, reported)
            if attempt.time_exhausted():
                self._finalise(attempt, paper, auto=True, reported=attempt.time_used_seconds)

        saved = self.store.update(current.id, apply)
        return Ack(
            attempt_id=saved.id,
            status=saved.status,
            time_used_seconds=saved.time_used_seconds,
            auto_submitted=saved.auto_submitted,
        )

    def submit(
        self,
        identity: Identity,
        attempt_id: str,
        *,
        auto_submitted: bool = False,
        time_used_seconds: Optional[int] = None,
    ) -> AssessmentAttempt:
        """Freeze and score the attempt. Repeat calls return the stored record."""
        reported = _check_time(time_used_seconds)
        current = self._load(identity, attempt_id)
        if not current.is_active:
            log.info("submit replay on terminal attempt id=%s", current.id)
            return current
        paper = self._paper(current.paper_id)

        def apply(attempt: AssessmentAttempt) -> Optional[bool]:
            if not attempt.is_active:
                return False
            self._finalise(attempt, paper, auto=auto_submitted, reported=reported)
            return None

        return self.store.update(current.id, apply)

    def get_results(self, identity: Identity, attempt_id: str) -> Dict[str, Any]:
        attempt = self._load(identity, attempt_id, staff_may_read=True)
        if attempt.is_active:
            raise AttemptNotSubmitted()
        paper = self._paper(attempt.paper_id)
        _, results = score_attempt(attempt, paper, self.bank, self.policy)
        if self.assistant is not None:
            for res in results:
                if not res.needs_manual_marking:
                    continue
                item = self.bank.get_item(res.item_id)
                if item is not None:
                    res.suggestion = self.assistant(item, res.answer, res.marks)
        return {
            "attempt": attempt.to_dict(),
            "paper": paper.meta(),
            "questionResults": [r.to_dict() for r in results],
        }
