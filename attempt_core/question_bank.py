from __future__ import annotations
import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from .config import bank_path
from .types import AssessmentItem, AssessmentPaper, PaperItemRef


class QuestionBank:
    """Read-only view over papers and the items they reference."""

    def __init__(self, items: Iterable[AssessmentItem], papers: Iterable[AssessmentPaper]) -> None:
        self._items: Dict[str, AssessmentItem] = {it.id: it for it in items}
        self._papers: Dict[str, AssessmentPaper] = {p.id: p for p in papers}

    def get_item(self, item_id: str) -> Optional[AssessmentItem]:
        return self._items.get(str(item_id))

    def get_paper(self, paper_id: str) -> Optional[AssessmentPaper]:
        return self._papers.get(str(paper_id))

    def items(self) -> List[AssessmentItem]:
        return list(self._items.values())

    def papers(self) -> List[AssessmentPaper]:
        return list(self._papers.values())

    def paper_items(self, paper: AssessmentPaper) -> List[Tuple[PaperItemRef, Optional[AssessmentItem]]]:
        """Paper refs in order, each paired with its item (None when dangling)."""
        return [(ref, self._items.get(ref.item_id)) for ref in paper.ordered_refs()]

    def item_in_paper(self, paper: AssessmentPaper, item_id: str) -> Optional[AssessmentItem]:
        for ref in paper.items:
            if ref.item_id == str(item_id):
                return self._items.get(ref.item_id)
        return None


def bank_from_dict(raw: dict) -> QuestionBank:
    items = [AssessmentItem.from_dict(r) for r in raw.get("items") or []]
    papers = [AssessmentPaper.from_dict(r) for r in raw.get("papers") or []]
    return QuestionBank(items, papers)


def load_bank(path: Path | str | None = None) -> QuestionBank:
    p = Path(path) if path else bank_path()
    raw = json.loads(p.read_text(encoding="utf-8"))
    return bank_from_dict(raw)
