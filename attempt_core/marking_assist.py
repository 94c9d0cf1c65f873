# attempt_core/marking_assist.py
from __future__ import annotations
import json, logging, os, pathlib
from dataclasses import dataclass
from typing import Any, Dict, Optional

from openai import AzureOpenAI

from .config import MARKING_ASSIST_MAX_TOKENS, get_backend, load_config
from .types import Answer, AssessmentItem

log = logging.getLogger(__name__)

_SYSTEM = (
    "You are an exam marker applying a mark scheme. "
    "Return ONLY compact JSON with keys: marks (integer), rationale (one sentence). "
    "Never award more than the available marks."
)


@dataclass(frozen=True)
class AzureSettings:
    endpoint: str
    api_key: str
    deployment: str
    api_version: str


def _from_json(path: str = ".azure_config.json") -> dict[str, str]:
    p = pathlib.Path(path)
    if not p.exists(): return {}
    try:
        j = json.loads(p.read_text(encoding="utf-8"))
    except ValueError:
        return {}
    return {k: str(j.get(k, "")) for k in ("endpoint", "api_key", "api_version", "deployment")}


def settings(cfg: dict | None = None) -> AzureSettings:
    cfg = cfg if cfg is not None else load_config()
    found = {
        "endpoint": cfg.get("AZURE_OPENAI_ENDPOINT", ""),
        "api_key": cfg.get("AZURE_OPENAI_API_KEY", ""),
        "api_version": cfg.get("AZURE_OPENAI_API_VERSION", ""),
        "deployment": cfg.get("AZURE_OPENAI_DEPLOYMENT", ""),
    }
    if not all(found.values()):
        for k, v in _from_json().items():
            if not found.get(k): found[k] = v
    missing = [k for k, v in found.items() if not v]
    if missing:
        raise RuntimeError(f"Azure OpenAI not configured. Missing: {', '.join(missing)}")
    return AzureSettings(**found)


def _prompt(item: AssessmentItem, answer_text: str, marks: int) -> str:
    scheme = item.mark_scheme or item.correct_answer or "(no mark scheme provided)"
    return (
        f"Question ({marks} marks):\n{item.prompt.strip()}\n\n"
        f"Mark scheme:\n{scheme.strip()}\n\n"
        f"Student answer:\n{answer_text.strip()}"
    )


class MarkingAssistant:
    """Advisory marks for answers that need a human marker.

    Suggestions are attached to results only; stored scores never change.
    """

    def __init__(self, client: AzureOpenAI, deployment: str) -> None:
        self.client = client
        self.deployment = deployment

    def __call__(
        self, item: AssessmentItem, answer: Optional[Answer], marks: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        """``marks`` is what the paper awards for the item; defaults to the item's own."""
        available = int(item.marks if marks is None else marks)
        text = (answer.text_answer or "") if answer else ""
        if not text.strip():
            return None
        try:
            resp = self.client.chat.completions.create(
                model=self.deployment,
                messages=[{"role": "system", "content": _SYSTEM},
                          {"role": "user", "content": _prompt(item, text, available)}],
                temperature=0.0, max_tokens=MARKING_ASSIST_MAX_TOKENS, top_p=1.0,
            )
            raw = json.loads(resp.choices[0].message.content or "{}")
            awarded = max(0, min(available, int(raw.get("marks", 0))))
        except Exception as exc:  # any backend or parse failure means "no suggestion"
            log.warning("marking assist failed item=%s: %s", item.id, exc)
            return None
        return {"marks": awarded, "rationale": str(raw.get("rationale", ""))[:500], "advisory": True}


def build_assistant(cfg: dict | None = None) -> Optional[MarkingAssistant]:
    cfg = cfg if cfg is not None else load_config()
    if get_backend(cfg) != "azure":
        return None
    s = settings(cfg)
    client = AzureOpenAI(azure_endpoint=s.endpoint, api_key=s.api_key, api_version=s.api_version)
    log.info("marking assist enabled deployment=%s", s.deployment)
    return MarkingAssistant(client, s.deployment)


def backend_in_use() -> str:
    b = (os.getenv("LLM_BACKEND") or "").lower()
    return b if b == "azure" else "none"
