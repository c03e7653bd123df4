"""Turn orchestration for the booking conversation."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Mapping, Sequence
from zoneinfo import ZoneInfo

from hvac_agent.core.errors import CalendarError
from hvac_agent.integrations.base import (
    Absent,
    CalendarWriter,
    ExtractionResult,
    LanguageModel,
    Malformed,
)

from . import extractors
from .gates import (
    FIELD_PROMPTS,
    current_mode,
    enter_final_confirmation,
    is_complete,
    next_prompt,
    progress,
    request_confirmation,
    resolve_confirmation,
)
from .policy import BookingPolicy
from .postprocess import ReplyContext, postprocess_reply
from .schema import validate_slot_update
from .slots import (
    ADDRESS_FIELDS,
    CAPTURE_FIELDS,
    SlotState,
    address_complete,
    clear_path,
    empty_slots,
    get_path,
    has_schedule,
    is_null,
    merge_slots,
    missing_fields,
    set_path,
)
from .types import DialogueMode, TurnInput, TurnResult, TurnSource

logger = logging.getLogger("hvac.dialogue")

HISTORY_LIMIT = 12


class BookingController:
    """Answers one caller utterance at a time; slot-state travels in and out with each turn."""

    def __init__(
        self,
        policy: BookingPolicy,
        llm: LanguageModel | None = None,
        calendar: CalendarWriter | None = None,
    ) -> None:
        self.policy = policy
        self.llm = llm
        self.calendar = calendar

    async def handle(self, turn: TurnInput) -> TurnResult:
        now = turn.now or datetime.now(ZoneInfo(self.policy.timezone))
        before = merge_slots(empty_slots(), turn.slots or {})
        utterance = (turn.utterance or "").strip()
        mode = current_mode(before)

        hazard = extractors.detect_emergency(utterance)
        if hazard:
            logger.warning("Emergency keyword %r on call %s", hazard, turn.call_sid)
            return self._result(self.policy.emergency_reply, merge_slots(before, {"emergency": True}), TurnSource.EMERGENCY)

        if before.get("booked"):
            return self._result(self.policy.closing_repeat, before, TurnSource.CLOSING)

        if mode is not DialogueMode.NORMAL_CAPTURE:
            return await self._confirm(mode, utterance, before, now)

        pending_fix = before.get("pending_fix")
        if pending_fix:
            return self._apply_fix(pending_fix, utterance, before, now)

        correction = extractors.detect_correction(utterance)
        if correction is not None:
            corrected = self._correct(correction, utterance, before, turn.last_question, now)
            if corrected is not None:
                return corrected

        shortcut = self._heuristic(utterance, before, turn.last_question, now)
        if shortcut is not None:
            return shortcut

        return await self._converse(turn, utterance, before, now)

    # ------------------------------------------------------------------ #
    # Gates, fixes and corrections
    # ------------------------------------------------------------------ #

    async def _confirm(self, mode: DialogueMode, utterance: str, slots: SlotState, now: datetime) -> TurnResult:
        outcome = resolve_confirmation(mode, utterance, slots, self.policy)

        if outcome.answer is extractors.YesNo.AFFIRM and mode is DialogueMode.AWAITING_FINAL_CONFIRMATION:
            return await self._book(outcome.slots, now)

        if outcome.answer is extractors.YesNo.NEGATE:
            target = outcome.reset_field
            if target == "*":
                target = extractors.field_mentioned(utterance)
                if target is None:
                    return self._result(outcome.reply or "", outcome.slots, TurnSource.GATE)
                without_fix = set_path(outcome.slots, "pending_fix", None)
                replaced = self._capture(target, utterance, without_fix, now)
                if replaced is None:
                    return self._ask_fix(target, without_fix)
                return self._after_capture(target, replaced, TurnSource.GATE)

            replaced = self._capture(target, utterance, outcome.slots, now) if target else None
            if replaced is not None:
                logger.info("Replacement %s given with the rejection", target)
                return self._after_capture(target, replaced, TurnSource.GATE)  # type: ignore[arg-type]

        return self._result(outcome.reply or "", outcome.slots, TurnSource.GATE)

    def _apply_fix(self, fix: Mapping[str, Any], utterance: str, slots: SlotState, now: datetime) -> TurnResult:
        target = fix.get("field") or "*"
        if target == "*":
            named = extractors.field_mentioned(utterance)
            if named is None:
                return self._result(fix.get("prompt") or FIELD_PROMPTS["full_name"], slots, TurnSource.FIX)
            target = named

        without_fix = set_path(slots, "pending_fix", None)
        captured = self._capture(target, utterance, without_fix, now)
        if captured is None:
            if fix.get("field") == "*":
                return self._ask_fix(target, without_fix)
            return self._result(fix.get("prompt") or self._prompt_for(target), slots, TurnSource.FIX)
        logger.info("Pending fix for %s resolved", target)
        return self._after_capture(target, captured, TurnSource.FIX)

    def _correct(
        self,
        correction: extractors.Correction,
        utterance: str,
        slots: SlotState,
        last_question: str | None,
        now: datetime,
    ) -> TurnResult | None:
        target = correction.field or extractors.field_for_question(last_question)
        if target is None or not self._has_value(slots, target):
            return None

        captured = self._capture(target, utterance, slots, now)
        if captured is not None:
            logger.info("Caller corrected %s", target)
            return self._after_capture(target, captured, TurnSource.FIX)
        return self._ask_fix(target, slots)

    def _ask_fix(self, target: str, slots: SlotState) -> TurnResult:
        prompt = f"Sure. {self._prompt_for(target)}"
        return self._result(prompt, set_path(slots, "pending_fix", {"field": target, "prompt": prompt}), TurnSource.FIX)

    @staticmethod
    def _prompt_for(target: str) -> str:
        if target.startswith("service_address.") and target not in FIELD_PROMPTS:
            return FIELD_PROMPTS["service_address"]
        return FIELD_PROMPTS.get(target, "What would you like to change?")

    @staticmethod
    def _has_value(slots: SlotState, target: str) -> bool:
        if target == "service_address":
            address = slots.get("service_address") or {}
            return any(not is_null(address.get(name)) for name in ADDRESS_FIELDS)
        if target == "preferred_schedule":
            return has_schedule(slots) or not is_null(slots.get("preferred_time"))
        return not is_null(get_path(slots, target))

    def _capture(self, target: str, utterance: str, slots: SlotState, now: datetime) -> SlotState | None:
        """Overwrite ``target`` with a value found in ``utterance``; None when nothing usable was said."""

        if target == "service_address":
            match = extractors.extract_address(utterance)
            if match is None or not match.line1:
                return None
            return self._with_default_state(merge_slots(clear_path(slots, "service_address"), {"service_address": match.as_slots()}))
        if target == "service_address.line1":
            street = extractors.extract_street(utterance)
            return set_path(slots, target, street) if street else None
        if target == "service_address.city":
            city = extractors.extract_city(utterance)
            return set_path(slots, target, city) if city else None
        if target == "service_address.zip":
            zip_code = extractors.extract_zip(utterance)
            return set_path(slots, target, zip_code) if zip_code else None
        if target == "callback_number":
            phone = extractors.extract_phone(utterance)
            if phone is None or not phone.complete:
                return None
            return merge_slots(set_path(slots, "phone_partial", None), {"callback_number": phone.number})
        if target == "full_name":
            name = extractors.extract_name(utterance, asked=True)
            return set_path(slots, target, name) if name else None
        if target == "preferred_schedule":
            schedule = extractors.extract_schedule(utterance, now)
            if schedule is None:
                return None
            return merge_slots(clear_path(slots, "preferred_schedule"), schedule.as_slots())
        return None

    def _after_capture(self, target: str, slots: SlotState, source: TurnSource) -> TurnResult:
        if target.startswith("service_address") and address_complete(slots):
            reply, updated = request_confirmation(DialogueMode.AWAITING_ADDRESS_CONFIRMATION, slots, self.policy)
            return self._result(reply, updated, source)
        if target == "callback_number":
            reply, updated = request_confirmation(DialogueMode.AWAITING_PHONE_CONFIRMATION, slots, self.policy)
            return self._result(reply, updated, source)
        reply, updated = progress(slots, self.policy)
        return self._result(f"Got it. {reply}", updated, source)

    def _with_default_state(self, slots: SlotState) -> SlotState:
        address = slots.get("service_address") or {}
        if not is_null(address.get("line1")) and is_null(address.get("state")):
            return set_path(slots, "service_address.state", self.policy.default_state)
        return slots

    # ------------------------------------------------------------------ #
    # Heuristic short-circuit
    # ------------------------------------------------------------------ #

    def _heuristic(
        self,
        utterance: str,
        slots: SlotState,
        last_question: str | None,
        now: datetime,
    ) -> TurnResult | None:
        asked = extractors.field_for_question(last_question)

        address = extractors.extract_address(utterance)
        if address is not None and address.complete:
            updated = self._with_default_state(
                merge_slots(clear_path(slots, "service_address"), {"service_address": address.as_slots()})
            )
            reply, updated = request_confirmation(DialogueMode.AWAITING_ADDRESS_CONFIRMATION, updated, self.policy)
            return self._result(reply, updated, TurnSource.HEURISTIC)

        if asked is not None and asked.startswith("service_address"):
            captured = self._capture(asked, utterance, slots, now) if asked != "service_address" else None
            if captured is None and address is not None:
                captured = self._with_default_state(merge_slots(slots, {"service_address": address.as_slots()}))
            if captured is not None:
                return self._after_capture("service_address", captured, TurnSource.HEURISTIC)

        pending_digits = (slots.get("phone_partial") or "") if asked == "callback_number" else ""
        phone = extractors.extract_phone(utterance, pending_digits)
        if phone is not None and phone.complete:
            heard_enough = asked == "callback_number" or len(extractors.spoken_digits(utterance)) >= 10
            if heard_enough:
                updated = merge_slots(set_path(slots, "phone_partial", None), {"callback_number": phone.number})
                reply, updated = request_confirmation(DialogueMode.AWAITING_PHONE_CONFIRMATION, updated, self.policy)
                return self._result(reply, updated, TurnSource.HEURISTIC)
        if asked == "callback_number" and phone is not None and phone.partial and len(phone.partial) >= 3:
            updated = set_path(slots, "phone_partial", phone.partial)
            return self._result("Okay. Go ahead with the rest of the number.", updated, TurnSource.HEURISTIC)

        if asked == "full_name":
            name = extractors.extract_name(utterance, asked=True)
            if name:
                reply, updated = progress(merge_slots(slots, {"full_name": name}), self.policy)
                return self._result(f"Thanks, {name.split()[0]}. {reply}", updated, TurnSource.HEURISTIC)

        if asked == "preferred_schedule":
            schedule = extractors.extract_schedule(utterance, now)
            if schedule is not None:
                reply, updated = progress(merge_slots(slots, schedule.as_slots()), self.policy)
                return self._result(f"Great. {reply}", updated, TurnSource.HEURISTIC)

        return None

    # ------------------------------------------------------------------ #
    # Language model
    # ------------------------------------------------------------------ #

    def _messages(self, turn: TurnInput, utterance: str, slots: SlotState, now: datetime) -> list[dict[str, str]]:
        known = {
            key: slots.get(key)
            for key in CAPTURE_FIELDS
            if not is_null(slots.get(key)) and slots.get(key) not in ([], False)
        }
        steering = (
            f"Today is {now:%A %Y-%m-%d}. Known details: {json.dumps(known, default=str)}. "
            f"Still needed: {', '.join(missing_fields(slots)) or 'nothing'}. "
            f"Last question asked: {turn.last_question or 'none'}."
        )
        messages = [
            {"role": "system", "content": self.policy.system_prompt},
            {"role": "system", "content": steering},
        ]
        for entry in list(turn.history)[-HISTORY_LIMIT:]:
            role = "assistant" if entry.get("role") == "assistant" else "user"
            content = entry.get("content") or entry.get("text") or ""
            if content:
                messages.append({"role": role, "content": content})
        messages.append({"role": "user", "content": utterance})
        return messages

    async def _ask_model(self, messages: Sequence[Mapping[str, str]]) -> ExtractionResult:
        if self.llm is None:
            return Absent(reason="not configured")
        try:
            return await asyncio.wait_for(self.llm.complete(messages), timeout=self.policy.llm_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Language model exceeded %.1fs", self.policy.llm_timeout_seconds)
            return Absent(reason="timeout")

    async def _converse(self, turn: TurnInput, utterance: str, before: SlotState, now: datetime) -> TurnResult:
        result = await self._ask_model(self._messages(turn, utterance, before, now))

        if isinstance(result, Absent):
            logger.info("No model answer (%s); asking the next question", result.reason)
            prompt, slots = next_prompt(before, self.policy)
            return self._result(f"{self.policy.missed_reply} {prompt}", slots, TurnSource.FALLBACK)
        if isinstance(result, Malformed):
            return self._result(self.policy.malformed_reply, before, TurnSource.FALLBACK)

        update = validate_slot_update(result.slots)
        # pricing_disclosed is only ever set from spoken text.
        update.pop("pricing_disclosed", None)
        number = update.get("callback_number")
        if number is not None:
            phone = extractors.extract_phone(number)
            update["callback_number"] = phone.number if phone is not None and phone.complete else None

        slots = self._backfill(merge_slots(before, update), utterance, turn.last_question, now)
        slots = self._with_default_state(slots)
        reply = result.reply

        if slots.get("emergency") and not before.get("emergency"):
            return self._result(self.policy.emergency_reply, slots, TurnSource.EMERGENCY)

        recent = [entry.get("content") or "" for entry in list(turn.history)[-4:] if entry.get("role") == "assistant"]
        if extractors.pricing_disclosed_in(reply, recent):
            slots = merge_slots(slots, {"pricing_disclosed": True})

        if current_mode(slots) is DialogueMode.NORMAL_CAPTURE:
            if is_complete(slots):
                reply, slots = enter_final_confirmation(slots, self.policy)
            elif missing_fields(slots) == ["pricing_disclosed"]:
                reply, slots = progress(slots, self.policy)

        context = ReplyContext(utterance=utterance, before=before, after=slots, policy=self.policy, history=turn.history)
        cleaned = postprocess_reply(reply, context)
        if not cleaned:
            cleaned, slots = next_prompt(slots, self.policy)
        return self._result(cleaned, slots, TurnSource.LLM)

    def _backfill(self, slots: SlotState, utterance: str, last_question: str | None, now: datetime) -> SlotState:
        """Fill fields the model left empty from the deterministic extractors."""

        asked = extractors.field_for_question(last_question)
        updates: dict[str, Any] = {}

        if is_null(slots.get("full_name")):
            name = extractors.extract_name(utterance, asked=asked == "full_name")
            if name:
                updates["full_name"] = name

        if is_null(slots.get("callback_number")):
            phone = extractors.extract_phone(utterance)
            if phone is not None and phone.complete and len(extractors.spoken_digits(utterance)) >= 10:
                updates["callback_number"] = phone.number

        if not address_complete(slots):
            match = extractors.extract_address(utterance)
            if match is not None:
                current = slots.get("service_address") or {}
                missing_parts = {key: value for key, value in match.as_slots().items() if is_null(current.get(key))}
                if missing_parts:
                    updates["service_address"] = missing_parts

        if not has_schedule(slots) and (asked == "preferred_schedule" or extractors.has_scheduling_intent(utterance)):
            schedule = extractors.extract_schedule(utterance, now)
            if schedule is not None:
                updates.update(schedule.as_slots())

        return merge_slots(slots, updates) if updates else slots

    # ------------------------------------------------------------------ #
    # Booking
    # ------------------------------------------------------------------ #

    async def _book(self, slots: SlotState, now: datetime) -> TurnResult:
        event_id: str | None = None
        if self.calendar is None:
            logger.warning("Calendar is not configured; booking recorded without an event")
        else:
            try:
                created = await asyncio.wait_for(
                    self.calendar.book(slots, self.policy, now),
                    timeout=self.policy.calendar_timeout_seconds,
                )
                event_id = created.get("id")
            except CalendarError as exc:
                logger.error("Calendar write failed: %s", exc)
            except asyncio.TimeoutError:
                logger.error("Calendar write exceeded %.1fs", self.policy.calendar_timeout_seconds)
            except Exception:
                # A failed write never ends the call; the booking stays recorded for follow-up.
                logger.exception("Calendar write raised an unexpected error")

        booked = merge_slots(slots, {"booked": True, "calendar_event_id": event_id})
        return self._result(
            self.policy.booked_reply,
            booked,
            TurnSource.GATE,
            done=True,
            goodbye=self.policy.goodbye,
        )

    def _result(
        self,
        reply: str,
        slots: SlotState,
        source: TurnSource,
        done: bool = False,
        goodbye: str | None = None,
    ) -> TurnResult:
        mode = current_mode(slots)
        logger.debug("Turn answered by %s in %s", source.value, mode.value)
        return TurnResult(
            reply=reply,
            slots=slots,
            done=done,
            goodbye=goodbye,
            needs_confirmation=mode is not DialogueMode.NORMAL_CAPTURE,
            mode=mode,
            source=source,
        )
