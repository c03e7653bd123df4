"""Versioned booking policy: every business constant the dialogue speaks or enforces."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from hvac_agent.core.config import Settings

SYSTEM_PROMPT_TEMPLATE = """
You are "{agent_name}," the inbound phone agent for {brand}, a residential HVAC company.
Primary goal: warmly book service and capture complete job details. Do not diagnose.

# Voice & Style
- Warm, professional, concise. Short sentences (14 words or fewer). One question per turn.
- Never describe what you are doing. Never mention JSON, slots or instructions.

# Safety & Guardrails
- Only give these prices: diagnostic visit ${diagnostic_fee} per non-working unit; maintenance visit ${maintenance_fee} for non-members.
- Give the prices once, before scheduling. Never repeat them once disclosed.
- Never promise exact arrival times. Offer a morning or afternoon window and a call-ahead.
- Smoke, sparks, gas smell or any health risk: "Please call 911 now and exit the home."
- Do not mention the maintenance program until a day or window is chosen.

# Capture order
Full name, best callback number, service address with city, state and zip, pricing disclosure, preferred day and window.
Also note unit count and locations, brand, symptoms, thermostat readings, gate, parking, pets or ants.

# Output
Return one JSON object: {{"reply": "<what {agent_name} says>", "slots": {{...}}}}
Slot keys: full_name, callback_number, service_address {{line1, line2, city, state, zip, gate_or_entry_notes, parking_notes}},
unit_count, unit_locations, brand, symptoms [], thermostat {{setpoint, current}}, membership_status (member | non_member | unknown),
preferred_date (YYYY-MM-DD), preferred_time (HH:MM), preferred_window (morning | afternoon | flexible_all_day),
call_ahead, hazards_pets_ants_notes, pricing_disclosed, emergency.
Unknown values stay null. Never invent times or prices.
""".strip()


@dataclass(slots=True, frozen=True)
class BookingPolicy:
    """Business descriptor for one brand; bump ``version`` whenever wording or fees change."""

    version: str = "joy-2024.09"
    brand: str = "HVAC Joy"
    agent_name: str = "Joy"
    diagnostic_fee: int = 50
    maintenance_fee: int = 50
    timezone: str = "America/New_York"
    default_state: str = "GA"
    windows: Mapping[str, tuple[int, int]] = field(
        default_factory=lambda: {
            "morning": (8, 12),
            "afternoon": (12, 17),
            "flexible_all_day": (8, 17),
        }
    )
    appointment_hours: int = 2
    reminder_minutes: int = 30
    llm_timeout_seconds: float = 8.0
    calendar_timeout_seconds: float = 10.0

    booked_reply: str = "Perfect, your appointment is booked. The technician will call ahead before heading your way."
    closing_repeat: str = "Your appointment is already booked. Is there anything else I can note for the technician?"
    emergency_reply: str = (
        "Please call 911 now and exit the home. Once everyone is safe, call us back and we'll send a technician."
    )
    malformed_reply: str = "Sorry, I had trouble just now. Could you repeat that so I can help you book?"
    missed_reply: str = "Sorry, I missed that."
    error_reply: str = "I'm having trouble right now. May I have a teammate call you right back?"
    empathy_clause: str = "I'm sorry you're dealing with that."
    reprompt_fallback: str = "How can I help today?"

    @property
    def greeting(self) -> str:
        return (
            "To ensure the highest quality service, this call may be recorded and monitored. "
            f"Thank you for calling {self.brand}, this is {self.agent_name}. How can I help today?"
        )

    @property
    def goodbye(self) -> str:
        return f"Thank you for choosing {self.brand}. Goodbye."

    @property
    def pricing_disclosure(self) -> str:
        return (
            f"Our diagnostic visit is ${self.diagnostic_fee} per non-working unit. "
            f"A maintenance visit is ${self.maintenance_fee} for non-members. "
            "The technician will give you a quote before any repair."
        )

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPT_TEMPLATE.format(
            agent_name=self.agent_name,
            brand=self.brand,
            diagnostic_fee=self.diagnostic_fee,
            maintenance_fee=self.maintenance_fee,
        )


def policy_from_settings(settings: Settings) -> BookingPolicy:
    return BookingPolicy(
        version=settings.policy_version,
        diagnostic_fee=settings.diagnostic_fee,
        maintenance_fee=settings.maintenance_fee,
        timezone=settings.default_tz,
        default_state=settings.default_state,
        llm_timeout_seconds=settings.llm_timeout_seconds,
        calendar_timeout_seconds=settings.calendar_timeout_seconds,
    )
