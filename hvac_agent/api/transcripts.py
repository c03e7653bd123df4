"""Transcript logging and call-record routes."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from hvac_agent.memory.models import CALLER, CallRecord, TranscriptLine
from hvac_agent.memory.store import TranscriptStore

CALL_RECORD_FIELDS = ("from_number", "transcript", "ai_summary", "call_sid")


def create_transcripts_router(store: TranscriptStore) -> APIRouter:
    router = APIRouter(prefix="/transcripts", tags=["transcripts"])

    @router.post("/log")
    async def log_line(payload: dict) -> dict:
        text = payload.get("text")
        if not text or not isinstance(text, str):
            raise HTTPException(status_code=400, detail="Missing text")

        meta = payload.get("meta")
        turn_index = payload.get("turnIndex")
        line = TranscriptLine(
            call_sid=payload.get("callSid"),
            role=str(payload.get("role") or CALLER),
            text=text,
            turn_index=int(turn_index) if isinstance(turn_index, int) else None,
            caller_phone=payload.get("caller"),
            metadata=meta if isinstance(meta, dict) else {},
        )
        return {"ok": True, "id": store.append_line(line)}

    @router.post("")
    async def record_call(payload: dict) -> dict:
        if not any(payload.get(name) for name in CALL_RECORD_FIELDS):
            raise HTTPException(
                status_code=400,
                detail="Provide at least one of: from_number, transcript, ai_summary, call_sid.",
            )

        meta = payload.get("meta")
        record = CallRecord(
            source=payload.get("source") or "callrail",
            call_sid=payload.get("call_sid"),
            from_number=payload.get("from_number"),
            to_number=payload.get("to_number"),
            direction=payload.get("direction"),
            status=payload.get("status"),
            transcript=payload.get("transcript"),
            ai_summary=payload.get("ai_summary"),
            meta=meta if isinstance(meta, dict) else None,
        )
        record_id, created_at = store.record_call(record)
        return {"ok": True, "id": record_id, "created_at": created_at}

    @router.get("/{call_sid}")
    async def call_transcript(call_sid: str, limit: int = 200) -> dict:
        lines = store.fetch_recent_lines(call_sid, limit=limit)
        if not lines:
            raise HTTPException(status_code=404, detail="No transcript for that call")
        return {
            "call_sid": call_sid,
            "lines": [
                {
                    "role": line.role,
                    "text": line.text,
                    "turn_index": line.turn_index,
                    "created_at": line.created_at.isoformat(),
                    "metadata": line.metadata,
                }
                for line in lines
            ],
        }

    return router
