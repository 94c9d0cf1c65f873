from __future__ import annotations

from attempt_core.question_bank import bank_from_dict
from attempt_core.scoring import score_attempt, score_item
from attempt_core.types import Answer, AssessmentAttempt, AssessmentItem
from tests.conftest import build_synthetic_bank, build_synthetic_bank_dict


def _attempt(*answers: Answer) -> AssessmentAttempt:
    return AssessmentAttempt(
        id="a1", paper_id="P1", student_id="s1",
        answers={a.question_id: a for a in answers},
    )


def test_empty_attempt_scores_zero():
    bank = build_synthetic_bank()
    score, results = score_attempt(_attempt(), bank.get_paper("P1"), bank)
    assert score.total_questions == 4
    assert score.answered == 0
    assert score.correct == 0
    assert score.percentage == 0
    assert score.total_marks == 1 + 1 + 2 + 3
    assert [r.order for r in results] == [1, 2, 3, 4]


def test_mixed_answers():
    bank = build_synthetic_bank()
    attempt = _attempt(
        Answer("mcq_0", selected_index=1),
        Answer("mcq_1", selected_index=0),
        Answer("short_0", text_answer="Photosynthesis"),
        Answer("other_0", text_answer="because light"),
    )
    score, results = score_attempt(attempt, bank.get_paper("P1"), bank)
    assert score.answered == 4
    assert score.correct == 2
    assert score.percentage == 50
    assert score.marks_awarded == 1 + 2
    assert score.needs_manual_marking == 1
    by_id = {r.item_id: r for r in results}
    assert by_id["mcq_1"].is_correct is False
    assert by_id["other_0"].needs_manual_marking is True
    assert by_id["other_0"].marks_awarded == 0
    assert by_id["short_0"].to_dict()["userAnswer"]["textAnswer"] == "Photosynthesis"


def test_percentage_rounds_half_up():
    bank = build_synthetic_bank(mcq=8, short=0, other=0)
    # 1/8 = 12.5% -> 13
    score, _ = score_attempt(_attempt(Answer("mcq_0", selected_index=1)), bank.get_paper("P1"), bank)
    assert score.percentage == 13

    bank3 = build_synthetic_bank(mcq=3, short=0, other=0)
    two = _attempt(Answer("mcq_0", selected_index=1), Answer("mcq_1", selected_index=1))
    score, _ = score_attempt(two, bank3.get_paper("P1"), bank3)
    assert score.percentage == 67


def test_blank_text_is_not_answered():
    bank = build_synthetic_bank(mcq=0, short=1, other=1)
    attempt = _attempt(Answer("short_0", text_answer="   "), Answer("other_0", text_answer=""))
    score, results = score_attempt(attempt, bank.get_paper("P1"), bank)
    assert score.answered == 0
    assert score.needs_manual_marking == 0
    assert not any(r.needs_manual_marking for r in results)


def test_short_policies():
    item = AssessmentItem(id="s", type="short", correct_answer="Diffusion")
    typo = Answer("s", text_answer="difusion")
    assert score_item(item, typo, "fuzzy") == (True, False)
    assert score_item(item, typo, "normalized") == (False, False)
    assert score_item(item, Answer("s", text_answer="diffusion"), "normalized") == (True, False)
    assert score_item(item, Answer("s", text_answer="diffusion"), "exact") == (False, False)
    assert score_item(item, typo, "manual") == (False, True)


def test_short_without_canonical_answer_needs_manual_marking():
    item = AssessmentItem(id="s", type="short", correct_answer=None)
    assert score_item(item, Answer("s", text_answer="anything"), "fuzzy") == (False, True)


def test_marks_override_and_missing_item():
    raw = build_synthetic_bank_dict(mcq=1, short=0, other=0)
    raw["papers"][0]["items"][0]["marksOverride"] = 4
    raw["papers"][0]["items"].append({"itemId": "gone", "order": 2})
    bank = bank_from_dict(raw)
    score, results = score_attempt(_attempt(Answer("mcq_0", selected_index=1)), bank.get_paper("P1"), bank)
    assert score.total_questions == 2
    assert score.correct == 1
    assert score.marks_awarded == 4
    assert score.total_marks == 5
    assert results[1].type == "unknown"
    assert results[1].is_correct is False


def test_scoring_is_pure():
    bank = build_synthetic_bank()
    attempt = _attempt(Answer("mcq_0", selected_index=1))
    before = attempt.to_dict()
    first, _ = score_attempt(attempt, bank.get_paper("P1"), bank)
    second, _ = score_attempt(attempt, bank.get_paper("P1"), bank)
    assert first == second
    assert attempt.to_dict() == before
