from __future__ import annotations
from fastapi import Depends, FastAPI, HTTPException, Header, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import logging, typing as t

from attempt_core import config
from attempt_core.engine import AttemptEngine
from attempt_core.entitlements import parse_expiry
from attempt_core.errors import AttemptError, PaperNotAvailable, PaperNotFound
from attempt_core.marking_assist import backend_in_use, build_assistant
from attempt_core.question_bank import load_bank
from attempt_core.store import AttemptStore
from attempt_core.types import Identity

log = logging.getLogger(__name__)

ROLES = ("student", "teacher", "admin", "parent")


def _assistant():
    try:
        return build_assistant()
    except RuntimeError as exc:
        # misconfigured marking assist must not take the attempt service down
        log.warning("marking assist disabled: %s", exc)
        return None


STORE = AttemptStore(config.data_dir())
BANK = load_bank()
ENGINE = AttemptEngine(STORE, BANK, assistant=_assistant())

app = FastAPI(title="Assessment Attempts API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(config.ALLOWED_ORIGINS),
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)


@app.exception_handler(AttemptError)
def _attempt_error(request: Request, exc: AttemptError):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "code": exc.code, "msg": exc.msg})


# ---- Schemas ----
class StartReq(BaseModel):
    paperId: str

class AnswerReq(BaseModel):
    questionId: str
    selectedIndex: int | None = None
    textAnswer: str | None = None
    timeUsedSeconds: int | None = None

class HeartbeatReq(BaseModel):
    timeUsedSeconds: int

class SubmitReq(BaseModel):
    autoSubmitted: bool = False
    timeUsedSeconds: int | None = None


# ---- Identity ----
def get_identity(
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
    x_subscription_expires_at: str | None = Header(None),
) -> Identity:
    """Identity comes from the upstream auth proxy as plain headers."""
    if not x_user_id:
        raise HTTPException(401, "missing X-User-Id")
    role = (x_user_role or "student").strip().lower()
    if role not in ROLES:
        raise HTTPException(401, f"unknown role {role!r}")
    return Identity(
        user_id=x_user_id.strip(),
        role=role,
        subscription_expires_at=parse_expiry(x_subscription_expires_at),
    )


# ---- Health ----
@app.get("/")
def root():
    return {"status": "ok", "service": "assessment-attempts-api"}

@app.get("/health")
def health():
    return {
        "status": "ok",
        "papers": len(BANK.papers()),
        "short_answer_policy": ENGINE.policy,
        "marking_assist": backend_in_use() if ENGINE.assistant is not None else "none",
        "heartbeat_interval_seconds": config.HEARTBEAT_INTERVAL_SECONDS,
    }


# ---- Papers ----
@app.get("/api/assessment-papers/{paper_id}")
def get_paper(
    paper_id: str,
    who: Identity = Depends(get_identity),
):
    paper = BANK.get_paper(paper_id)
    if paper is None:
        raise PaperNotFound()
    if not paper.is_published and not who.is_staff:
        raise PaperNotAvailable()
    body = paper.meta()
    body["items"] = [
        dict(item.to_dict(include_answers=who.is_staff), order=ref.order, marks=ref.marks_override or item.marks)
        for ref, item in BANK.paper_items(paper) if item is not None
    ]
    return {"success": True, "paper": body}


# ---- Attempts ----
@app.post("/api/assessment-attempts")
def start_attempt(
    req: StartReq,
    response: Response,
    who: Identity = Depends(get_identity),
):
    attempt, created = ENGINE.start_or_resume(who, req.paperId)
    response.status_code = 201 if created else 200
    return {"success": True, "created": created, "attempt": attempt.to_dict()}


@app.get("/api/assessment-attempts")
def list_attempts(
    paper_id: str | None = Query(None, alias="paperId"),
    status: str | None = Query(None),
    student_id: str | None = Query(None, alias="studentId"),
    who: Identity = Depends(get_identity),
):
    attempts = ENGINE.list_attempts(who, paper_id=paper_id, status=status, student_id=student_id)
    return {"success": True, "attempts": [a.to_dict() for a in attempts]}


@app.get("/api/assessment-attempts/in-progress/{paper_id}")
def in_progress(
    paper_id: str,
    who: Identity = Depends(get_identity),
):
    return {"success": True, "attempt": ENGINE.get_in_progress(who, paper_id).to_dict()}


@app.get("/api/assessment-attempts/{attempt_id}")
def get_attempt(
    attempt_id: str,
    who: Identity = Depends(get_identity),
):
    return {"success": True, "attempt": ENGINE.get_attempt(who, attempt_id).to_dict()}


@app.put("/api/assessment-attempts/{attempt_id}/answer")
def record_answer(
    attempt_id: str,
    req: AnswerReq,
    who: Identity = Depends(get_identity),
):
    ack = ENGINE.record_answer(
        who, attempt_id, req.questionId,
        selected_index=req.selectedIndex,
        text_answer=req.textAnswer,
        time_used_seconds=req.timeUsedSeconds,
    )
    return {"success": True, "ack": ack.to_dict()}


@app.post("/api/assessment-attempts/{attempt_id}/heartbeat")
def heartbeat(
    attempt_id: str,
    req: HeartbeatReq,
    who: Identity = Depends(get_identity),
):
    return {"success": True, "ack": ENGINE.heartbeat(who, attempt_id, req.timeUsedSeconds).to_dict()}


@app.post("/api/assessment-attempts/{attempt_id}/submit")
def submit(
    attempt_id: str,
    req: SubmitReq | None = None,
    who: Identity = Depends(get_identity),
):
    req = req or SubmitReq()
    attempt = ENGINE.submit(
        who, attempt_id, auto_submitted=req.autoSubmitted, time_used_seconds=req.timeUsedSeconds
    )
    return {"success": True, "attempt": attempt.to_dict()}


@app.get("/api/assessment-attempts/{attempt_id}/results")
def results(
    attempt_id: str,
    who: Identity = Depends(get_identity),
) -> dict[str, t.Any]:
    return {"success": True, **ENGINE.get_results(who, attempt_id)}

