from __future__ import annotations
from collections import Counter
from typing import List
from .config import MCQ_MIN_OPTIONS, MCQ_MAX_OPTIONS
from .question_bank import QuestionBank
from .types import AssessmentItem, AssessmentPaper

ITEM_TYPES = ("mcq", "short", "other")


def item_problems(it: AssessmentItem) -> List[str]:
    out: List[str] = []
    if it.type not in ITEM_TYPES:
        out.append(f"item {it.id}: unsupported type {it.type!r}")
        return out
    if it.marks < 1:
        out.append(f"item {it.id}: marks must be >= 1")
    if it.type == "mcq":
        n = len(it.options)
        if not MCQ_MIN_OPTIONS <= n <= MCQ_MAX_OPTIONS:
            out.append(f"item {it.id}: mcq needs {MCQ_MIN_OPTIONS}-{MCQ_MAX_OPTIONS} options, has {n}")
        if not isinstance(it.correct_index, int) or not 0 <= it.correct_index < n:
            out.append(f"item {it.id}: correctIndex {it.correct_index!r} out of range")
    return out


def manual_only_items(bank: QuestionBank) -> List[str]:
    """Items whose answers can never be auto-graded."""
    return [
        it.id for it in bank.items()
        if it.type == "other" or (it.type == "short" and not (it.correct_answer or "").strip())
    ]


def paper_problems(paper: AssessmentPaper, bank: QuestionBank) -> List[str]:
    out: List[str] = []
    if paper.duration_seconds < 0:
        out.append(f"paper {paper.id}: negative durationSeconds")
    counts = Counter(ref.item_id for ref in paper.items)
    for item_id, n in counts.items():
        if n > 1:
            out.append(f"paper {paper.id}: duplicate itemId {item_id}")
    for ref in paper.items:
        if bank.get_item(ref.item_id) is None:
            out.append(f"paper {paper.id}: missing item {ref.item_id}")
        if ref.marks_override is not None and ref.marks_override < 1:
            out.append(f"paper {paper.id}: marksOverride for {ref.item_id} must be >= 1")
    return out


def bank_problems(bank: QuestionBank) -> List[str]:
    out: List[str] = []
    for it in bank.items():
        out.extend(item_problems(it))
    for paper in bank.papers():
        out.extend(paper_problems(paper, bank))
    return out
