"""Ordered clean-up pipeline applied to model replies before they are spoken."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Mapping, Sequence

from .extractors import mentions_pricing, problem_reported
from .policy import BookingPolicy
from .slots import has_schedule


@dataclass(slots=True)
class ReplyContext:
    utterance: str
    before: Mapping[str, Any]
    after: Mapping[str, Any]
    policy: BookingPolicy
    history: Sequence[Mapping[str, str]] = field(default_factory=tuple)

    @property
    def assistant_spoke(self) -> bool:
        return any(entry.get("role") == "assistant" for entry in self.history)


Transform = Callable[[str, ReplyContext], str]

STAGE_DIRECTIONS = re.compile(r"\[[^\]]*\]|\*[^*]+\*|\((?:[^)]*\b(?:pause|pauses|laughs|sighs|tone|smiles|warmly)\b[^)]*)\)", re.I)
META_SENTENCE = re.compile(r"\b(?:as an ai|language model|json|slot|system prompt|my instructions)\b", re.I)
MEMBERSHIP = re.compile(
    r"\b(?:membership|maintenance (?:program|plan|club|agreement)|become a member|are you a member)\b",
    re.I,
)
APOLOGY = re.compile(r"\b(?:sorry|apologi[sz]e|understand|unfortunate)\b", re.I)


@lru_cache(maxsize=16)
def speaker_prefix(agent_name: str) -> re.Pattern[str]:
    return re.compile(rf"^\s*(?:reply|response|{re.escape(agent_name)}|assistant|agent)\s*:\s*", re.I)


@lru_cache(maxsize=16)
def greeting_pattern(agent_name: str) -> re.Pattern[str]:
    return re.compile(
        r"^(?:hi|hello|hey|good (?:morning|afternoon|evening))\b[^.!?]*[.!?]?$"
        r"|\bthank(?:s| you) for calling\b"
        rf"|\bthis is {re.escape(agent_name)}\b"
        r"|\bmay be recorded\b",
        re.I,
    )


@lru_cache(maxsize=16)
def brand_variants(brand: str) -> re.Pattern[str]:
    """Spoken or spelled-out forms of ``brand`` ("H.V.A.C. joy", "hvac-joy")."""

    parts = []
    for word in brand.split():
        if word.isupper() and len(word) > 1:
            parts.append(r"\.?\s*".join(re.escape(letter) for letter in word) + r"\.?")
        else:
            parts.append(re.escape(word))
    return re.compile(r"(?<!\w)" + r"[\s-]*".join(parts) + r"(?!\w)", re.I)


def split_sentences(text: str) -> list[str]:
    return [part.strip() for part in re.split(r"(?<=[.!?])\s+", text.strip()) if part.strip()]


def _keep_sentences(text: str, drop: Callable[[str], bool]) -> str:
    return " ".join(sentence for sentence in split_sentences(text) if not drop(sentence))


def strip_meta_language(reply: str, context: ReplyContext) -> str:
    cleaned = STAGE_DIRECTIONS.sub(" ", reply)
    cleaned = speaker_prefix(context.policy.agent_name).sub("", cleaned)
    cleaned = re.sub(r"[{}]", " ", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return _keep_sentences(cleaned, lambda sentence: bool(META_SENTENCE.search(sentence)))


def suppress_repeated_pricing(reply: str, context: ReplyContext) -> str:
    if context.before.get("pricing_disclosed") is not True:
        return reply
    return _keep_sentences(reply, mentions_pricing)


def suppress_early_membership(reply: str, context: ReplyContext) -> str:
    if has_schedule(context.after):
        return reply
    return _keep_sentences(reply, lambda sentence: bool(MEMBERSHIP.search(sentence)))


def strip_duplicate_greeting(reply: str, context: ReplyContext) -> str:
    if not context.assistant_spoke:
        return reply
    greeting = greeting_pattern(context.policy.agent_name)
    return _keep_sentences(reply, lambda sentence: bool(greeting.search(sentence)))


def add_empathy(reply: str, context: ReplyContext) -> str:
    if not reply or not problem_reported(context.utterance) or APOLOGY.search(reply):
        return reply
    return f"{context.policy.empathy_clause} {reply}"


def normalize_brand(reply: str, context: ReplyContext) -> str:
    return brand_variants(context.policy.brand).sub(context.policy.brand, reply)


PIPELINE: tuple[Transform, ...] = (
    strip_meta_language,
    suppress_repeated_pricing,
    suppress_early_membership,
    strip_duplicate_greeting,
    add_empathy,
    normalize_brand,
)


def postprocess_reply(reply: str, context: ReplyContext, pipeline: Sequence[Transform] = PIPELINE) -> str:
    for transform in pipeline:
        reply = transform(reply, context)
    return reply.strip()
