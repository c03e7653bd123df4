import asyncio

from google.auth.exceptions import RefreshError

from hvac_agent.dialogue.gates import SHORT_FINAL_PROMPT, WHAT_TO_CHANGE_PROMPT, booking_summary, enter_final_confirmation
from hvac_agent.dialogue.slots import clear_path, empty_slots, merge_slots
from hvac_agent.dialogue.types import DialogueMode, TurnInput, TurnSource
from hvac_agent.integrations.base import Malformed, WellFormed


def run_turn(controller, utterance, slots=None, last_question=None, history=(), now=None):
    turn = TurnInput(
        utterance=utterance,
        call_sid="CA-test",
        slots=slots,
        last_question=last_question,
        history=history,
        now=now,
    )
    return asyncio.run(controller.handle(turn))


def contact_only():
    return merge_slots(empty_slots(), {"full_name": "Jane Doe", "callback_number": "404-444-2544"})


def test_emergency_overrides_everything(make_controller, policy, jane_slots, fixed_now):
    controller = make_controller()
    _, slots = enter_final_confirmation(jane_slots, policy)

    result = run_turn(controller, "wait, I smell gas", slots=slots, now=fixed_now)

    assert result.reply == policy.emergency_reply
    assert result.source is TurnSource.EMERGENCY
    assert result.slots["emergency"] is True
    assert controller.llm.calls == []


def test_complete_address_goes_to_confirmation_without_model(make_controller, fixed_now):
    controller = make_controller()

    result = run_turn(
        controller,
        "It's 123 Main Street, Atlanta, Georgia 30301",
        slots=contact_only(),
        last_question="What's the service address?",
        now=fixed_now,
    )

    assert result.reply == "I have the service address as 123 Main St, Atlanta, GA 30301. Is that correct?"
    assert result.mode is DialogueMode.AWAITING_ADDRESS_CONFIRMATION
    assert result.needs_confirmation is True
    assert result.source is TurnSource.HEURISTIC
    assert controller.llm.calls == []


def test_confirmed_address_leads_to_pricing(make_controller, policy, fixed_now):
    controller = make_controller()
    first = run_turn(controller, "123 Main Street, Atlanta, GA 30301", slots=contact_only(), now=fixed_now)

    second = run_turn(controller, "yes", slots=first.slots, last_question=first.reply, now=fixed_now)

    assert second.reply == f"{policy.pricing_disclosure} What day works best for you, morning or afternoon?"
    assert second.slots["pricing_disclosed"] is True
    assert second.mode is DialogueMode.NORMAL_CAPTURE
    assert second.source is TurnSource.GATE


def test_rejected_address_with_replacement_is_confirmed_again(make_controller, fixed_now):
    controller = make_controller()
    first = run_turn(controller, "123 Main Street, Atlanta, GA 30301", slots=contact_only(), now=fixed_now)

    second = run_turn(
        controller,
        "no, it's 55 Oak Avenue NE, Decatur GA 30030",
        slots=first.slots,
        last_question=first.reply,
        now=fixed_now,
    )

    assert second.reply == "I have the service address as 55 Oak Ave NE, Decatur, GA 30030. Is that correct?"
    assert second.mode is DialogueMode.AWAITING_ADDRESS_CONFIRMATION


def test_rejected_address_without_replacement_asks_again(make_controller, fixed_now):
    controller = make_controller()
    first = run_turn(controller, "123 Main Street, Atlanta, GA 30301", slots=contact_only(), now=fixed_now)

    second = run_turn(controller, "no that's wrong", slots=first.slots, last_question=first.reply, now=fixed_now)

    assert second.reply.startswith("Sorry about that.")
    assert second.slots["service_address"]["line1"] is None
    assert second.mode is DialogueMode.NORMAL_CAPTURE


def test_phone_number_collected_in_pieces(make_controller, fixed_now):
    controller = make_controller()
    slots = merge_slots(empty_slots(), {"full_name": "Jane Doe"})

    first = run_turn(controller, "404 444", slots=slots, last_question="What's the best callback number?", now=fixed_now)
    second = run_turn(controller, "2544", slots=first.slots, last_question=first.reply, now=fixed_now)

    assert first.reply == "Okay. Go ahead with the rest of the number."
    assert first.slots["phone_partial"] == "404444"
    assert second.reply == "I have your callback number as 4 0 4, 4 4 4, 2 5 4 4. Is that right?"
    assert second.slots["callback_number"] == "404-444-2544"
    assert second.slots["phone_partial"] is None
    assert second.mode is DialogueMode.AWAITING_PHONE_CONFIRMATION


def test_name_answer_moves_to_next_question(make_controller, fixed_now):
    controller = make_controller()

    result = run_turn(controller, "Jane Doe", slots=empty_slots(), last_question="May I have your full name?", now=fixed_now)

    assert result.reply == "Thanks, Jane. What's the best callback number?"
    assert result.slots["full_name"] == "Jane Doe"


def test_schedule_answer_completes_booking_details(make_controller, policy, jane_slots, fixed_now):
    controller = make_controller()
    slots = clear_path(jane_slots, "preferred_schedule")

    result = run_turn(
        controller,
        "next tuesday morning",
        slots=slots,
        last_question="What day works best for you, morning or afternoon?",
        now=fixed_now,
    )

    assert result.reply.startswith("Great. Let me read that back.")
    assert result.slots["preferred_date"] == "2024-10-22"
    assert result.slots["preferred_window"] == "morning"
    assert result.mode is DialogueMode.AWAITING_FINAL_CONFIRMATION


def test_final_yes_books_the_calendar(make_controller, policy, jane_slots, fixed_now):
    controller = make_controller()
    summary, slots = enter_final_confirmation(jane_slots, policy)

    result = run_turn(controller, "yes that's right", slots=slots, last_question=summary, now=fixed_now)

    assert result.done is True
    assert result.reply == policy.booked_reply
    assert result.goodbye == policy.goodbye
    assert result.slots["booked"] is True
    assert result.slots["calendar_event_id"] == "evt-1"
    event = controller.calendar.events[0]
    assert event["summary"] == "HVAC Joy service: Jane Doe"
    assert event["start"]["dateTime"] == "2024-10-21T08:00:00"


def test_calendar_failure_still_closes_the_call(make_controller, fake_calendar_factory, policy, jane_slots, fixed_now):
    controller = make_controller(calendar=fake_calendar_factory(fail=True))
    _, slots = enter_final_confirmation(jane_slots, policy)

    result = run_turn(controller, "yes", slots=slots, now=fixed_now)

    assert result.done is True
    assert result.slots["booked"] is True
    assert result.slots["calendar_event_id"] is None


def test_calendar_auth_failure_still_closes_the_call(make_controller, fake_calendar_factory, policy, jane_slots, fixed_now):
    revoked = fake_calendar_factory(error=RefreshError("invalid_grant: account key revoked"))
    controller = make_controller(calendar=revoked)
    summary, slots = enter_final_confirmation(jane_slots, policy)

    result = run_turn(controller, "yes", slots=slots, last_question=summary, now=fixed_now)

    assert result.done is True
    assert result.reply == policy.booked_reply
    assert result.slots["booked"] is True
    assert result.slots["calendar_event_id"] is None


def test_turns_after_booking_repeat_the_closing(make_controller, policy, jane_slots, fixed_now):
    controller = make_controller()
    booked = merge_slots(jane_slots, {"booked": True})

    result = run_turn(controller, "thanks so much", slots=booked, now=fixed_now)

    assert result.reply == policy.closing_repeat
    assert result.done is False
    assert result.source is TurnSource.CLOSING


def test_final_rejection_naming_a_field_replaces_it(make_controller, policy, jane_slots, fixed_now):
    controller = make_controller()
    _, slots = enter_final_confirmation(jane_slots, policy)

    result = run_turn(controller, "no, the zip should be 30309", slots=slots, now=fixed_now)

    assert result.slots["service_address"]["zip"] == "30309"
    assert result.mode is DialogueMode.AWAITING_ADDRESS_CONFIRMATION
    assert result.slots["pending_fix"] is None


def test_final_rejection_then_pending_fix(make_controller, policy, jane_slots, fixed_now):
    controller = make_controller()
    _, slots = enter_final_confirmation(jane_slots, policy)

    first = run_turn(controller, "no", slots=slots, now=fixed_now)
    second = run_turn(controller, "my phone number", slots=first.slots, last_question=first.reply, now=fixed_now)
    third = run_turn(controller, "404 555 1234", slots=second.slots, last_question=second.reply, now=fixed_now)

    assert first.reply == WHAT_TO_CHANGE_PROMPT
    assert second.reply == "Sure. What's the best callback number?"
    assert second.slots["pending_fix"]["field"] == "callback_number"
    assert third.slots["callback_number"] == "404-555-1234"
    assert third.slots["pending_fix"] is None
    assert third.mode is DialogueMode.AWAITING_PHONE_CONFIRMATION
    assert controller.llm.calls == []


def test_correction_of_captured_value(make_controller, jane_slots, fixed_now):
    controller = make_controller()

    result = run_turn(controller, "actually my number is 404 555 1234", slots=jane_slots, now=fixed_now)

    assert result.source is TurnSource.FIX
    assert result.slots["callback_number"] == "404-555-1234"
    assert result.mode is DialogueMode.AWAITING_PHONE_CONFIRMATION


def test_model_reply_is_cleaned_and_slots_merged(make_controller, policy, fixed_now):
    reply = WellFormed(
        reply="Thanks! May I have your full name?",
        slots={"symptoms": ["no cooling"], "pricing_disclosed": True},
    )
    controller = make_controller(reply)

    result = run_turn(controller, "my AC is not cooling", slots=None, last_question=policy.greeting, now=fixed_now)

    assert result.reply == f"{policy.empathy_clause} Thanks! May I have your full name?"
    assert result.slots["symptoms"] == ["no cooling"]
    assert result.slots["pricing_disclosed"] is False
    assert result.source is TurnSource.LLM
    messages = controller.llm.calls[0]
    assert messages[0] == {"role": "system", "content": policy.system_prompt}
    assert messages[-1] == {"role": "user", "content": "my AC is not cooling"}


def test_spoken_pricing_marks_disclosure(make_controller, policy, jane_slots, fixed_now):
    slots = clear_path(jane_slots, "preferred_schedule")
    slots["pricing_disclosed"] = False
    controller = make_controller(WellFormed(reply=f"{policy.pricing_disclosure} What day works best?", slots={}))

    result = run_turn(controller, "sure, what do you charge", slots=slots, now=fixed_now)

    assert result.slots["pricing_disclosed"] is True
    assert result.reply == f"{policy.pricing_disclosure} What day works best?"


def test_model_completing_the_booking_triggers_read_back(make_controller, policy, jane_slots, fixed_now):
    slots = clear_path(jane_slots, "preferred_schedule")
    controller = make_controller(
        WellFormed(reply="Great.", slots={"preferred_date": "2024-10-21", "preferred_window": "morning"})
    )

    result = run_turn(controller, "Monday works", slots=slots, now=fixed_now)

    assert result.reply == booking_summary(jane_slots, policy)
    assert result.reply.endswith(SHORT_FINAL_PROMPT)
    assert result.mode is DialogueMode.AWAITING_FINAL_CONFIRMATION


def test_absent_model_answer_falls_back_to_next_question(make_controller, policy, fixed_now):
    controller = make_controller()

    result = run_turn(controller, "um hello?", slots=empty_slots(), now=fixed_now)

    assert result.reply == f"{policy.missed_reply} May I have your full name?"
    assert result.source is TurnSource.FALLBACK


def test_malformed_model_answer_keeps_slots(make_controller, policy, jane_slots, fixed_now):
    slots = clear_path(jane_slots, "preferred_schedule")
    controller = make_controller(Malformed(raw="not json"))

    result = run_turn(controller, "hmm let me think", slots=slots, now=fixed_now)

    assert result.reply == policy.malformed_reply
    assert result.slots == slots
    assert result.source is TurnSource.FALLBACK


def test_filler_words_are_not_read_as_an_address(make_controller, policy, fixed_now):
    controller = make_controller(WellFormed(reply="I'm sorry to hear that. May I have your full name?", slots={}))

    result = run_turn(controller, "my AC died, can you help me", slots=None, last_question=policy.greeting, now=fixed_now)

    assert result.source is TurnSource.LLM
    assert all(value is None for value in result.slots["service_address"].values())
