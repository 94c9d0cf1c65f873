"""Client transports for the attempt driver.

``HttpTransport`` talks to the FastAPI service; ``LocalTransport`` calls an
in-process engine. Both return the same JSON-shaped dicts and raise the
engine's error classes for rejected operations, plus ``TransportError`` when
the request never got an answer.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .engine import AttemptEngine
from .errors import error_for_code
from .types import Identity

log = logging.getLogger(__name__)


class TransportError(Exception):
    """The request failed before the server could accept or reject it."""


class HttpTransport:
    def __init__(
        self,
        base_url: str,
        identity: Identity,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        headers = {"X-User-Id": identity.user_id, "X-User-Role": identity.role}
        if identity.subscription_expires_at is not None:
            headers["X-Subscription-Expires-At"] = identity.subscription_expires_at.isoformat()
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._headers = headers

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, path: str, json: Dict[str, Any] | None = None) -> Dict[str, Any]:
        try:
            resp = await self._client.request(method, path, json=json, headers=self._headers)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path}: {exc}") from exc
        log.debug("%s %s -> %s", method, path, resp.status_code)
        if resp.status_code >= 500:
            raise TransportError(f"{method} {path}: server error {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as exc:
            raise TransportError(f"{method} {path}: non-JSON response") from exc
        if resp.status_code >= 400:
            raise error_for_code(body.get("code"), body.get("msg") or body.get("detail"))
        return body

    async def start_or_resume(self, paper_id: str) -> Dict[str, Any]:
        body = await self._call("POST", "/api/assessment-attempts", {"paperId": paper_id})
        return body["attempt"]

    async def get_paper(self, paper_id: str) -> Dict[str, Any]:
        body = await self._call("GET", f"/api/assessment-papers/{paper_id}")
        return body["paper"]

    async def record_answer(
        self,
        attempt_id: str,
        question_id: str,
        *,
        selected_index: Optional[int] = None,
        text_answer: Optional[str] = None,
        time_used_seconds: Optional[int] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"questionId": question_id, "timeUsedSeconds": time_used_seconds}
        if text_answer is not None:
            payload["textAnswer"] = text_answer
        else:
            payload["selectedIndex"] = selected_index
        body = await self._call("PUT", f"/api/assessment-attempts/{attempt_id}/answer", payload)
        return body["ack"]

    async def heartbeat(self, attempt_id: str, time_used_seconds: int) -> Dict[str, Any]:
        body = await self._call(
            "POST", f"/api/assessment-attempts/{attempt_id}/heartbeat", {"timeUsedSeconds": time_used_seconds}
        )
        return body["ack"]

    async def submit(self, attempt_id: str, auto_submitted: bool, time_used_seconds: Optional[int]) -> Dict[str, Any]:
        body = await self._call(
            "POST",
            f"/api/assessment-attempts/{attempt_id}/submit",
            {"autoSubmitted": auto_submitted, "timeUsedSeconds": time_used_seconds},
        )
        return body["attempt"]

    async def get_results(self, attempt_id: str) -> Dict[str, Any]:
        return await self._call("GET", f"/api/assessment-attempts/{attempt_id}/results")


class LocalTransport:
    """Drives an in-process engine with the same contract as ``HttpTransport``."""

    def __init__(self, engine: AttemptEngine, identity: Identity) -> None:
        self.engine = engine
        self.identity = identity

    async def start_or_resume(self, paper_id: str) -> Dict[str, Any]:
        attempt, _ = self.engine.start_or_resume(self.identity, paper_id)
        return attempt.to_dict()

    async def get_paper(self, paper_id: str) -> Dict[str, Any]:
        paper = self.engine.bank.get_paper(paper_id)
        if paper is None:
            raise error_for_code("paper_not_found")
        out = paper.meta()
        out["items"] = [
            dict(item.to_dict(include_answers=False), order=ref.order, marks=ref.marks_override or item.marks)
            for ref, item in self.engine.bank.paper_items(paper) if item is not None
        ]
        return out

    async def record_answer(
        self,
        attempt_id: str,
        question_id: str,
        *,
        selected_index: Optional[int] = None,
        text_answer: Optional[str] = None,
        time_used_seconds: Optional[int] = None,
    ) -> Dict[str, Any]:
        ack = self.engine.record_answer(
            self.identity, attempt_id, question_id,
            selected_index=selected_index, text_answer=text_answer, time_used_seconds=time_used_seconds,
        )
        return ack.to_dict()

    async def heartbeat(self, attempt_id: str, time_used_seconds: int) -> Dict[str, Any]:
        return self.engine.heartbeat(self.identity, attempt_id, time_used_seconds).to_dict()

    async def submit(self, attempt_id: str, auto_submitted: bool, time_used_seconds: Optional[int]) -> Dict[str, Any]:
        attempt = self.engine.submit(
            self.identity, attempt_id, auto_submitted=auto_submitted, time_used_seconds=time_used_seconds
        )
        return attempt.to_dict()

    async def get_results(self, attempt_id: str) -> Dict[str, Any]:
        return self.engine.get_results(self.identity, attempt_id)

