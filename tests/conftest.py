from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from attempt_core.engine import AttemptEngine
from attempt_core.question_bank import QuestionBank, bank_from_dict
from attempt_core.store import AttemptStore
from attempt_core.transport import LocalTransport, TransportError
from attempt_core.types import Identity

FAR_FUTURE = datetime(2099, 1, 1, tzinfo=timezone.utc)
T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


def build_synthetic_bank_dict(
    *,
    mcq: int = 2,
    short: int = 1,
    other: int = 1,
    duration_seconds: int = 600,
    published: bool = True,
) -> dict:
    """Deterministic bank with one paper ("P1") holding every item, plus a draft paper."""

    items: list[dict] = []
    for idx in range(mcq):
        items.append({
            "id": f"mcq_{idx}",
            "type": "mcq",
            "prompt": f"MCQ #{idx}",
            "options": ["A", "B", "C", "D"],
            "correctIndex": 1,
            "marks": 1,
        })
    for idx in range(short):
        items.append({
            "id": f"short_{idx}",
            "type": "short",
            "prompt": f"Short #{idx}",
            "correctAnswer": "photosynthesis",
            "marks": 2,
        })
    for idx in range(other):
        items.append({
            "id": f"other_{idx}",
            "type": "other",
            "prompt": f"Explain #{idx}",
            "markScheme": "any sensible explanation",
            "marks": 3,
        })
    refs = [{"itemId": it["id"], "order": n + 1} for n, it in enumerate(items)]
    return {
        "items": items,
        "papers": [
            {"id": "P1", "title": "Synthetic paper", "durationSeconds": duration_seconds,
             "isPublished": published, "items": refs},
            {"id": "DRAFT", "title": "Draft paper", "durationSeconds": duration_seconds,
             "isPublished": False, "items": refs[:1]},
        ],
    }


def build_synthetic_bank(**kw) -> QuestionBank:
    return bank_from_dict(build_synthetic_bank_dict(**kw))


def write_bank(path: Path, **kw) -> Path:
    path.write_text(json.dumps(build_synthetic_bank_dict(**kw)), encoding="utf-8")
    return path


class FixedClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class Recorder:
    """Wraps a transport, logs calls in order and fails the kinds listed in ``fail``."""

    def __init__(self, inner: LocalTransport) -> None:
        self.inner = inner
        self.calls: list[tuple] = []
        self.fail: set[str] = set()

    def _maybe_fail(self, kind: str) -> None:
        if kind in self.fail:
            raise TransportError(f"{kind}: connection reset")

    async def record_answer(self, attempt_id, question_id, **kw):
        self.calls.append(("answer", question_id))
        self._maybe_fail("answer")
        return await self.inner.record_answer(attempt_id, question_id, **kw)

    async def heartbeat(self, attempt_id, time_used_seconds):
        self.calls.append(("heartbeat", time_used_seconds))
        self._maybe_fail("heartbeat")
        return await self.inner.heartbeat(attempt_id, time_used_seconds)

    async def submit(self, attempt_id, auto_submitted, time_used_seconds):
        self.calls.append(("submit", auto_submitted, time_used_seconds))
        self._maybe_fail("submit")
        return await self.inner.submit(attempt_id, auto_submitted, time_used_seconds)

    def count(self, kind: str) -> int:
        return sum(1 for c in self.calls if c[0] == kind)


def student(user_id: str = "s1", expires: datetime | None = FAR_FUTURE) -> Identity:
    return Identity(user_id=user_id, role="student", subscription_expires_at=expires)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def bank() -> QuestionBank:
    return build_synthetic_bank()


@pytest.fixture
def engine(bank, clock) -> AttemptEngine:
    return AttemptEngine(AttemptStore(), bank, clock=clock, policy="fuzzy")
