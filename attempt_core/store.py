"""Attempt persistence with the atomicity the lifecycle controller relies on.

Records live in memory and, when a root directory is given, are mirrored to
one JSON file per attempt (written to a temp file and swapped into place).
Two invariants are enforced here rather than in the engine:

* at most one ``in_progress`` attempt per (student, paper), checked and
  claimed under a per-key lock on creation;
* every mutation is a read-modify-write of a private copy under a
  per-attempt lock, so readers only ever see whole records.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import ActiveAttemptExists, AttemptNotFound
from .types import AssessmentAttempt

log = logging.getLogger(__name__)

Key = Tuple[str, str]
Mutator = Callable[[AssessmentAttempt], Optional[bool]]


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        log.warning("unreadable attempt file %s", path)
        return default


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


class AttemptStore:
    def __init__(self, root: Path | str | None = None) -> None:
        self._root = Path(root) if root else None
        self._records: Dict[str, Dict[str, Any]] = {}
        self._active: Dict[Key, str] = {}
        # guards the lock tables only; never held while a record is mutated
        self._guard = threading.Lock()
        self._attempt_locks: Dict[str, threading.Lock] = {}
        self._key_locks: Dict[Key, threading.Lock] = {}
        if self._root:
            self._load()

    # ---- locks ----
    def _attempt_lock(self, attempt_id: str) -> threading.Lock:
        with self._guard:
            return self._attempt_locks.setdefault(attempt_id, threading.Lock())

    def _key_lock(self, key: Key) -> threading.Lock:
        with self._guard:
            return self._key_locks.setdefault(key, threading.Lock())

    # ---- persistence ----
    @property
    def attempts_dir(self) -> Optional[Path]:
        return self._root / "attempts" if self._root else None

    def _load(self) -> None:
        folder = self.attempts_dir
        if folder is None or not folder.exists():
            return
        for path in sorted(folder.glob("*.json")):
            raw = _read_json(path, None)
            if not raw:
                continue
            attempt = AssessmentAttempt.from_dict(raw)
            self._records[attempt.id] = raw
            if attempt.is_active:
                key = (attempt.student_id, attempt.paper_id)
                if key in self._active:
                    log.warning("duplicate active attempt %s for %s; keeping %s", attempt.id, key, self._active[key])
                    continue
                self._active[key] = attempt.id
        log.info("loaded %d attempts (%d active) from %s", len(self._records), len(self._active), folder)

    def _put(self, attempt: AssessmentAttempt) -> None:
        payload = attempt.to_dict()
        folder = self.attempts_dir
        if folder is not None:
            _write_json(folder / f"{attempt.id}.json", payload)
        self._records[attempt.id] = payload

    # ---- reads ----
    def get(self, attempt_id: str) -> Optional[AssessmentAttempt]:
        raw = self._records.get(str(attempt_id))
        return AssessmentAttempt.from_dict(raw) if raw else None

    def find_in_progress(self, student_id: str, paper_id: str) -> Optional[AssessmentAttempt]:
        attempt_id = self._active.get((str(student_id), str(paper_id)))
        if attempt_id is None:
            return None
        attempt = self.get(attempt_id)
        return attempt if attempt and attempt.is_active else None

    def list(
        self,
        *,
        student_id: str | None = None,
        paper_id: str | None = None,
        status: str | None = None,
    ) -> List[AssessmentAttempt]:
        out: List[AssessmentAttempt] = []
        for raw in list(self._records.values()):
            if student_id is not None and raw.get("studentId") != student_id:
                continue
            if paper_id is not None and raw.get("paperId") != paper_id:
                continue
            if status is not None and raw.get("status") != status:
                continue
            out.append(AssessmentAttempt.from_dict(raw))
        out.sort(key=lambda a: a.started_at or "", reverse=True)
        return out

    # ---- writes ----
    def create(self, attempt: AssessmentAttempt) -> AssessmentAttempt:
        """Insert a new in_progress attempt, claiming the (student, paper) slot.

        Raises ``ActiveAttemptExists`` with the holder's id when the slot is
        already taken.
        """
        key = (attempt.student_id, attempt.paper_id)
        with self._key_lock(key):
            holder = self._active.get(key)
            if holder is not None:
                raise ActiveAttemptExists(holder)
            self._put(attempt)
            self._active[key] = attempt.id
        return AssessmentAttempt.from_dict(self._records[attempt.id])

    def update(self, attempt_id: str, fn: Mutator) -> AssessmentAttempt:
        """Apply ``fn`` to a private copy and commit it atomically.

        ``fn`` may raise to abort (nothing is written) or return ``False`` to
        commit nothing and hand back the current record unchanged.
        """
        # records are never removed, so a lock is only ever made for a stored attempt
        if attempt_id not in self._records:
            raise AttemptNotFound()
        with self._attempt_lock(attempt_id):
            raw = self._records[attempt_id]
            attempt = AssessmentAttempt.from_dict(raw)
            was_active = attempt.is_active
            if fn(attempt) is False:
                return AssessmentAttempt.from_dict(raw)
            if not was_active and attempt.is_active:
                raise ValueError(f"attempt {attempt_id}: status cannot return to in_progress")
            self._put(attempt)
            if was_active and not attempt.is_active:
                key = (attempt.student_id, attempt.paper_id)
                with self._key_lock(key):
                    if self._active.get(key) == attempt_id:
                        self._active.pop(key, None)
            return AssessmentAttempt.from_dict(self._records[attempt_id])
