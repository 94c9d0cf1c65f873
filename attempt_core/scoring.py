from __future__ import annotations
import logging
import math
from typing import List, Optional, Tuple

from . import config
from .heuristics import exact_match, fuzzy_match, normalized_match
from .question_bank import QuestionBank
from .types import (
    AssessmentAttempt,
    AssessmentItem,
    AssessmentPaper,
    Answer,
    PaperItemRef,
    QuestionResult,
    Score,
)

log = logging.getLogger(__name__)

# (is_correct, needs_manual_marking)
Verdict = Tuple[bool, bool]


def _score_mcq(item: AssessmentItem, answer: Optional[Answer]) -> Verdict:
    if answer is None or answer.selected_index is None:
        return False, False
    if not isinstance(item.correct_index, int):
        return False, True
    return int(answer.selected_index) == item.correct_index, False


def _score_short(item: AssessmentItem, answer: Optional[Answer], policy: str) -> Verdict:
    text = answer.text_answer if answer else None
    if text is None or not text.strip():
        return False, False
    canon = (item.correct_answer or "").strip()
    if policy == "manual" or not canon:
        return False, True
    if policy == "exact":
        return exact_match(text, canon), False
    if policy == "normalized":
        return normalized_match(text, canon), False
    return fuzzy_match(text, canon), False


def _score_other(item: AssessmentItem, answer: Optional[Answer]) -> Verdict:
    if answer is None or not answer.is_answered():
        return False, False
    return False, True


def score_item(item: AssessmentItem, answer: Optional[Answer], policy: str | None = None) -> Verdict:
    """
    Returns (is_correct, needs_manual_marking).
    mcq: answer.selected_index against item.correct_index.
    short: answer.text_answer against item.correct_answer under ``policy``.
    other: never auto-graded.
    """
    pol = policy or config.SHORT_ANSWER_POLICY
    if item.type == "mcq":
        return _score_mcq(item, answer)
    if item.type == "short":
        return _score_short(item, answer, pol)
    return _score_other(item, answer)


def _item_marks(item: AssessmentItem, ref: PaperItemRef) -> int:
    return int(ref.marks_override or item.marks or 1)


def score_attempt(
    attempt: AssessmentAttempt,
    paper: AssessmentPaper,
    bank: QuestionBank,
    policy: str | None = None,
) -> Tuple[Score, List[QuestionResult]]:
    """Score an attempt against the paper's items.

    Pure: reads the attempt and bank, mutates neither. Items the paper
    references but the bank no longer holds still count towards
    ``total_questions`` and are reported as unanswerable.
    """
    results: List[QuestionResult] = []
    answered = correct = awarded = total_marks = manual = 0

    for ref, item in bank.paper_items(paper):
        answer = attempt.answers.get(ref.item_id)
        if item is None:
            log.warning("paper %s references missing item %s", paper.id, ref.item_id)
            marks = int(ref.marks_override or 1)
            total_marks += marks
            results.append(QuestionResult(
                item_id=ref.item_id, order=ref.order, type="unknown", prompt="",
                options=[], marks=marks, correct_index=None, correct_answer=None,
                explanation=None, answer=answer, is_correct=False, marks_awarded=0,
            ))
            continue

        marks = _item_marks(item, ref)
        total_marks += marks
        is_correct, needs_manual = score_item(item, answer, policy)
        if answer is not None and answer.is_answered():
            answered += 1
        if is_correct:
            correct += 1
            awarded += marks
        if needs_manual:
            manual += 1
        log.debug("item %s type=%s correct=%s manual=%s", item.id, item.type, is_correct, needs_manual)
        results.append(QuestionResult(
            item_id=item.id,
            order=ref.order,
            type=item.type,
            prompt=item.prompt,
            options=list(item.options),
            marks=marks,
            correct_index=item.correct_index if item.type == "mcq" else None,
            correct_answer=item.correct_answer,
            explanation=item.explanation,
            answer=answer,
            is_correct=is_correct,
            marks_awarded=marks if is_correct else 0,
            needs_manual_marking=needs_manual,
        ))

    total = len(results)
    # half-up, not banker's rounding
    percentage = math.floor(100 * correct / total + 0.5) if total else 0
    score = Score(
        total_questions=total,
        answered=answered,
        correct=correct,
        percentage=int(percentage),
        marks_awarded=awarded,
        total_marks=total_marks,
        needs_manual_marking=manual,
    )
    return score, results
