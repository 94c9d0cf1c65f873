from __future__ import annotations
import os, json, pathlib


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


# client loop
TICK_SECONDS: int = 1
HEARTBEAT_INTERVAL_SECONDS: int = 30

# answers
TEXT_ANSWER_MAX_LEN: int = 10000
MCQ_MIN_OPTIONS: int = 2
MCQ_MAX_OPTIONS: int = 5

# free-text grading: "fuzzy" | "normalized" | "exact" | "manual"
SHORT_ANSWER_POLICIES: tuple[str, ...] = ("fuzzy", "normalized", "exact", "manual")
SHORT_ANSWER_POLICY: str = "fuzzy"
SHORT_OVERLAP_MIN: float = 0.6
SHORT_MAX_EDIT: int = 1
SHORT_STOPWORDS: frozenset[str] = frozenset({
    "a", "an", "the", "and", "or", "but",
    "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did",
    "of", "to", "in", "on", "for", "with",
    # filler in the biology bank
    "cell", "cells",
})
NEGATION_WORDS: frozenset[str] = frozenset({
    "no", "not", "dont", "doesnt", "didnt", "cant", "cannot",
    "wont", "without", "lack", "lacks", "never",
})

# advisory marking for items that need a human
MARKING_ASSIST_ENABLED: bool = False
MARKING_ASSIST_MAX_TOKENS: int = 200

ALLOWED_ORIGINS: tuple[str, ...] = ("http://localhost:3000",)

# // env overrides for staging/ops
HEARTBEAT_INTERVAL_SECONDS = _env_int("HEARTBEAT_INTERVAL_SECONDS", HEARTBEAT_INTERVAL_SECONDS)
TEXT_ANSWER_MAX_LEN = _env_int("TEXT_ANSWER_MAX_LEN", TEXT_ANSWER_MAX_LEN)
SHORT_ANSWER_POLICY = _env_str("SHORT_ANSWER_POLICY", SHORT_ANSWER_POLICY).lower()
if SHORT_ANSWER_POLICY not in SHORT_ANSWER_POLICIES:
    SHORT_ANSWER_POLICY = "fuzzy"
SHORT_OVERLAP_MIN = _env_float("SHORT_OVERLAP_MIN", SHORT_OVERLAP_MIN)
SHORT_MAX_EDIT = _env_int("SHORT_MAX_EDIT", SHORT_MAX_EDIT)
MARKING_ASSIST_ENABLED = _env_bool("MARKING_ASSIST_ENABLED", MARKING_ASSIST_ENABLED)
_origins = os.getenv("ALLOWED_ORIGINS")
if _origins:
    ALLOWED_ORIGINS = tuple(o.strip() for o in _origins.split(",") if o.strip())


def data_dir() -> pathlib.Path:
    return pathlib.Path(os.getenv("DATA_DIR", "data")).resolve()


def bank_path() -> pathlib.Path:
    raw = os.getenv("BANK_PATH")
    if raw:
        return pathlib.Path(raw)
    return pathlib.Path(__file__).with_name("data") / "bank.json"


def load_config() -> dict:
    """Merge ``config.json`` (if present) with the LLM backend env vars."""
    cfg = {}
    p = pathlib.Path("config.json")
    if p.exists():
        try: cfg = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError): cfg = {}
    e = os.environ
    if e.get("LLM_BACKEND"): cfg["LLM_BACKEND"] = e.get("LLM_BACKEND")
    if e.get("MARKING_ASSIST_ENABLED"): cfg["MARKING_ASSIST_ENABLED"] = _env_bool("MARKING_ASSIST_ENABLED", False)
    for k in ("AZURE_OPENAI_ENDPOINT", "AZURE_OPENAI_API_VERSION", "AZURE_OPENAI_API_KEY", "AZURE_OPENAI_DEPLOYMENT"):
        if e.get(k): cfg[k] = e.get(k)
    return cfg


def get_backend(cfg: dict) -> str | None:
    if not cfg.get("MARKING_ASSIST_ENABLED", MARKING_ASSIST_ENABLED): return None
    b = (cfg.get("LLM_BACKEND") or "").lower().strip()
    return b if b == "azure" else None
