from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Literal

ItemType = Literal["mcq", "short", "other"]
AttemptStatus = Literal["in_progress", "submitted"]
Role = Literal["student", "teacher", "admin", "parent"]

IN_PROGRESS = "in_progress"
SUBMITTED = "submitted"


@dataclass
class AssessmentItem:
    id: str; type: ItemType; prompt: str = ""
    options: List[str] = field(default_factory=list)
    correct_index: Optional[int] = None
    correct_answer: Optional[str] = None
    mark_scheme: str = ""
    marks: int = 1
    explanation: Optional[str] = None
    title: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AssessmentItem":
        return cls(
            id=str(raw["id"]),
            type=raw.get("type", "other"),
            prompt=raw.get("prompt", ""),
            options=list(raw.get("options") or []),
            correct_index=raw.get("correctIndex"),
            correct_answer=raw.get("correctAnswer"),
            mark_scheme=raw.get("markScheme", ""),
            marks=int(raw.get("marks", 1)),
            explanation=raw.get("explanation"),
            title=raw.get("title"),
        )

    def to_dict(self, *, include_answers: bool = True) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "prompt": self.prompt,
            "options": list(self.options),
            "marks": self.marks,
        }
        if include_answers:
            out["correctIndex"] = self.correct_index
            out["correctAnswer"] = self.correct_answer
            out["markScheme"] = self.mark_scheme
            out["explanation"] = self.explanation
        return out


@dataclass
class PaperItemRef:
    item_id: str; order: int
    marks_override: Optional[int] = None


@dataclass
class AssessmentPaper:
    id: str; title: str
    items: List[PaperItemRef] = field(default_factory=list)
    duration_seconds: int = 0
    subject: str = ""
    exam_board: str = ""
    level: str = ""
    tier: str = "mixed"
    kind: str = "practice_set"
    is_published: bool = True

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AssessmentPaper":
        refs = [
            PaperItemRef(
                item_id=str(r["itemId"]),
                order=int(r.get("order", idx + 1)),
                marks_override=r.get("marksOverride"),
            )
            for idx, r in enumerate(raw.get("items") or [])
        ]
        return cls(
            id=str(raw["id"]),
            title=raw.get("title", ""),
            items=refs,
            duration_seconds=int(raw.get("durationSeconds") or 0),
            subject=raw.get("subject", ""),
            exam_board=raw.get("examBoard", ""),
            level=raw.get("level", ""),
            tier=raw.get("tier", "mixed"),
            kind=raw.get("kind", "practice_set"),
            is_published=bool(raw.get("isPublished", True)),
        )

    def ordered_refs(self) -> List[PaperItemRef]:
        return sorted(self.items, key=lambda r: r.order)

    def meta(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "subject": self.subject,
            "examBoard": self.exam_board,
            "level": self.level,
            "tier": self.tier,
            "kind": self.kind,
            "durationSeconds": self.duration_seconds,
        }


@dataclass
class Answer:
    question_id: str
    selected_index: Optional[int] = None
    text_answer: Optional[str] = None
    answered_at: Optional[str] = None

    def is_answered(self) -> bool:
        if self.selected_index is not None:
            return True
        return self.text_answer is not None and self.text_answer.strip() != ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "questionId": self.question_id,
            "selectedIndex": self.selected_index,
            "textAnswer": self.text_answer,
            "answeredAt": self.answered_at,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Answer":
        return cls(
            question_id=str(raw["questionId"]),
            selected_index=raw.get("selectedIndex"),
            text_answer=raw.get("textAnswer"),
            answered_at=raw.get("answeredAt"),
        )


@dataclass
class Score:
    total_questions: int = 0
    answered: int = 0
    correct: int = 0
    percentage: int = 0
    marks_awarded: int = 0
    total_marks: int = 0
    needs_manual_marking: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalQuestions": self.total_questions,
            "answered": self.answered,
            "correct": self.correct,
            "percentage": self.percentage,
            "marksAwarded": self.marks_awarded,
            "totalMarks": self.total_marks,
            "needsManualMarking": self.needs_manual_marking,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Score":
        return cls(
            total_questions=int(raw.get("totalQuestions", 0)),
            answered=int(raw.get("answered", 0)),
            correct=int(raw.get("correct", 0)),
            percentage=int(raw.get("percentage", 0)),
            marks_awarded=int(raw.get("marksAwarded", 0)),
            total_marks=int(raw.get("totalMarks", 0)),
            needs_manual_marking=int(raw.get("needsManualMarking", 0)),
        )


@dataclass
class QuestionResult:
    item_id: str; order: int; type: str
    prompt: str
    options: List[str]
    marks: int
    correct_index: Optional[int]
    correct_answer: Optional[str]
    explanation: Optional[str]
    answer: Optional[Answer]
    is_correct: bool
    marks_awarded: int
    needs_manual_marking: bool = False
    suggestion: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "itemId": self.item_id,
            "order": self.order,
            "type": self.type,
            "prompt": self.prompt,
            "options": list(self.options),
            "marks": self.marks,
            "correctIndex": self.correct_index,
            "correctAnswer": self.correct_answer,
            "explanation": self.explanation,
            "userAnswer": self.answer.to_dict() if self.answer else None,
            "isCorrect": self.is_correct,
            "marksAwarded": self.marks_awarded,
            "needsManualMarking": self.needs_manual_marking,
            "suggestion": self.suggestion,
        }


@dataclass
class AssessmentAttempt:
    id: str; paper_id: str; student_id: str
    status: AttemptStatus = IN_PROGRESS
    started_at: str = ""
    submitted_at: Optional[str] = None
    duration_seconds: int = 0
    time_used_seconds: int = 0
    auto_submitted: bool = False
    answers: Dict[str, Answer] = field(default_factory=dict)
    score: Optional[Score] = None

    @property
    def is_active(self) -> bool:
        return self.status == IN_PROGRESS

    @property
    def is_timed(self) -> bool:
        return self.duration_seconds > 0

    def time_exhausted(self) -> bool:
        return self.is_timed and self.time_used_seconds >= self.duration_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "paperId": self.paper_id,
            "studentId": self.student_id,
            "status": self.status,
            "startedAt": self.started_at,
            "submittedAt": self.submitted_at,
            "durationSeconds": self.duration_seconds,
            "timeUsedSeconds": self.time_used_seconds,
            "autoSubmitted": self.auto_submitted,
            "answers": [a.to_dict() for a in self.answers.values()],
            "score": self.score.to_dict() if self.score else None,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AssessmentAttempt":
        answers = [Answer.from_dict(a) for a in raw.get("answers") or []]
        score = raw.get("score")
        return cls(
            id=str(raw["id"]),
            paper_id=str(raw["paperId"]),
            student_id=str(raw["studentId"]),
            status=raw.get("status", IN_PROGRESS),
            started_at=raw.get("startedAt", ""),
            submitted_at=raw.get("submittedAt"),
            duration_seconds=int(raw.get("durationSeconds") or 0),
            time_used_seconds=int(raw.get("timeUsedSeconds") or 0),
            auto_submitted=bool(raw.get("autoSubmitted", False)),
            answers={a.question_id: a for a in answers},
            score=Score.from_dict(score) if score else None,
        )


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: Role = "student"
    subscription_expires_at: Optional[datetime] = None

    @property
    def is_staff(self) -> bool:
        return self.role in ("teacher", "admin")


@dataclass
class Ack:
    attempt_id: str
    status: AttemptStatus
    time_used_seconds: int
    auto_submitted: bool = False
    accepted: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attemptId": self.attempt_id,
            "status": self.status,
            "timeUsedSeconds": self.time_used_seconds,
            "autoSubmitted": self.auto_submitted,
            "accepted": self.accepted,
        }
