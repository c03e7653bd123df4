"""Heuristic extractors over raw caller speech.

Every extractor is a pure function of the utterance text. Each one tries a
strict pattern first, then a relaxed one, and returns ``None`` when the input
is ambiguous. A ``None`` result means "no update", never "clear the field".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, Sequence

# --------------------------------------------------------------------------- #
# Shared vocabulary
# --------------------------------------------------------------------------- #

DIGIT_WORDS = {
    "zero": "0",
    "oh": "0",
    "o": "0",
    "one": "1",
    "two": "2",
    "three": "3",
    "four": "4",
    "five": "5",
    "six": "6",
    "seven": "7",
    "eight": "8",
    "nine": "9",
}
REPEAT_WORDS = {"double": 2, "triple": 3}

STATE_ABBREVIATIONS = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR", "california": "CA",
    "colorado": "CO", "connecticut": "CT", "delaware": "DE", "district of columbia": "DC",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID", "illinois": "IL",
    "indiana": "IN", "iowa": "IA", "kansas": "KS", "kentucky": "KY", "louisiana": "LA",
    "maine": "ME", "maryland": "MD", "massachusetts": "MA", "michigan": "MI", "minnesota": "MN",
    "mississippi": "MS", "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK", "oregon": "OR",
    "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC", "south dakota": "SD",
    "tennessee": "TN", "texas": "TX", "utah": "UT", "vermont": "VT", "virginia": "VA",
    "washington": "WA", "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
}
_STATE_CODES = set(STATE_ABBREVIATIONS.values())
_STATE_CODES_LOWER = {code.lower() for code in _STATE_CODES}

STREET_SUFFIXES = {
    "street": "St", "st": "St",
    "avenue": "Ave", "ave": "Ave",
    "road": "Rd", "rd": "Rd",
    "drive": "Dr", "dr": "Dr",
    "lane": "Ln", "ln": "Ln",
    "court": "Ct", "ct": "Ct",
    "boulevard": "Blvd", "blvd": "Blvd",
    "way": "Way",
    "place": "Pl", "pl": "Pl",
    "circle": "Cir", "cir": "Cir",
    "parkway": "Pkwy", "pkwy": "Pkwy",
    "trail": "Trl", "trl": "Trl",
    "terrace": "Ter", "ter": "Ter",
    "highway": "Hwy", "hwy": "Hwy",
    "crossing": "Xing",
    "pike": "Pike",
    "loop": "Loop",
    "square": "Sq",
}
DIRECTIONALS = {"n", "s", "e", "w", "ne", "nw", "se", "sw", "north", "south", "east", "west",
                "northeast", "northwest", "southeast", "southwest"}
_DIRECTIONAL_ABBREVIATIONS = {
    "north": "N", "south": "S", "east": "E", "west": "W",
    "northeast": "NE", "northwest": "NW", "southeast": "SE", "southwest": "SW",
}
UNIT_WORDS = {"apt", "apartment", "unit", "suite", "ste", "#"}
# Two-letter codes that are also everyday words ("can you help me", "ok"); only a zip makes them a state.
AMBIGUOUS_STATE_CODES = {"me", "ok", "in", "hi", "or", "oh", "ne", "la", "pa", "ma", "id", "al", "de"}
ADDRESS_FILLER = {"in", "at", "the", "city", "of", "my", "zip", "code", "is", "and", "its", "it's", "town"}

WEEKDAYS = {
    "monday": 0, "mon": 0,
    "tuesday": 1, "tues": 1, "tue": 1,
    "wednesday": 2, "wed": 2,
    "thursday": 3, "thurs": 3, "thu": 3,
    "friday": 4, "fri": 4,
    "saturday": 5, "sat": 5,
    "sunday": 6, "sun": 6,
}
MONTHS = {
    "january": 1, "jan": 1, "february": 2, "feb": 2, "march": 3, "mar": 3, "april": 4, "apr": 4,
    "may": 5, "june": 6, "jun": 6, "july": 7, "jul": 7, "august": 8, "aug": 8,
    "september": 9, "sept": 9, "sep": 9, "october": 10, "oct": 10, "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}
SCHEDULING_INTENT = (
    "schedule", "appointment", "come out", "come by", "available", "availability", "book",
    "visit", "works for me", "work for me", "that works", "send someone", "technician",
    "earliest", "soonest", "asap", "slot",
)
WINDOW_ENDS = {"morning": 12, "afternoon": 17, "flexible_all_day": 15}

MORNING = "morning"
AFTERNOON = "afternoon"
FLEXIBLE = "flexible_all_day"


def _normalize(text: str) -> str:
    lowered = text.lower().replace("’", "'")
    lowered = re.sub(r"[^a-z0-9:'$/ -]", " ", lowered)
    return re.sub(r"\s+", " ", lowered).strip()


def _capitalize(words: Iterable[str]) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in words if word)


# --------------------------------------------------------------------------- #
# Phone
# --------------------------------------------------------------------------- #


@dataclass(slots=True, frozen=True)
class PhoneMatch:
    """Either a complete number or the digits heard so far."""

    number: str | None = None
    partial: str | None = None

    @property
    def complete(self) -> bool:
        return self.number is not None


def spoken_digits(text: str) -> str:
    """Collect numerals and spoken digit words ("oh", "double five") in order."""

    tokens = re.sub(r"[^a-z0-9 ]", " ", text.lower().replace("-", " ")).split()
    digits: list[str] = []
    repeat = 1
    for token in tokens:
        if token in REPEAT_WORDS:
            repeat = REPEAT_WORDS[token]
            continue
        if token.isdigit():
            digits.append(token[0] * repeat + token[1:] if repeat > 1 else token)
        elif token in DIGIT_WORDS and (token not in {"o", "oh"} or digits):
            digits.append(DIGIT_WORDS[token] * repeat)
        repeat = 1
    return "".join(digits)


def format_phone(digits: str) -> str:
    return f"{digits[:3]}-{digits[3:6]}-{digits[6:]}"


def phone_for_speech(number: str) -> str:
    """Read a number back digit by digit, grouped the way people say it."""

    groups = [group for group in number.split("-") if group]
    return ", ".join(" ".join(group) for group in groups)


def extract_phone(text: str, pending_digits: str = "") -> PhoneMatch | None:
    heard = spoken_digits(text)
    if not heard:
        return None

    digits = (pending_digits or "") + heard
    if len(digits) > 10 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) == 10:
        return PhoneMatch(number=format_phone(digits))
    if 11 <= len(digits) <= 12:
        # Noisy transcription usually corrupts the middle; keep area code and line number.
        return PhoneMatch(number=format_phone(digits[:3] + digits[-7:]))
    if len(digits) < 10:
        return PhoneMatch(partial=digits)
    return None


# --------------------------------------------------------------------------- #
# Address
# --------------------------------------------------------------------------- #


@dataclass(slots=True, frozen=True)
class AddressMatch:
    line1: str | None = None
    line2: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None

    @property
    def complete(self) -> bool:
        return bool(self.line1 and self.city and self.zip)

    def as_slots(self) -> dict[str, str]:
        return {
            name: value
            for name, value in (
                ("line1", self.line1),
                ("line2", self.line2),
                ("city", self.city),
                ("state", self.state),
                ("zip", self.zip),
            )
            if value
        }


def _numerals_for_digit_runs(text: str) -> str:
    """Turn runs of two or more spoken digits into numerals ("two four seven eight" -> "2478")."""

    tokens = text.split(" ")
    out: list[str] = []
    run: list[str] = []

    def flush() -> None:
        if len(run) >= 2:
            out.append("".join(DIGIT_WORDS[token] for token in run))
        else:
            out.extend(run)
        run.clear()

    for token in tokens:
        bare = token.strip(",")
        if bare in DIGIT_WORDS and (bare not in {"o", "oh"} or run):
            run.append(bare)
            if token.endswith(","):
                flush()
                out[-1] = out[-1] + ","
            continue
        flush()
        out.append(token)
    flush()
    return " ".join(out)


def _address_text(text: str) -> str:
    lowered = text.lower().replace("’", "'")
    lowered = re.sub(r"[.;:!?()\"]", " ", lowered)
    lowered = re.sub(r"[^a-z0-9,#' -]", " ", lowered)
    lowered = re.sub(r"\s*,[\s,]*", ", ", lowered)
    lowered = re.sub(r"\s+", " ", lowered).strip(" ,")
    return _numerals_for_digit_runs(lowered)


def _split_state(head: str, zip_follows: bool = False) -> tuple[str, str | None]:
    """Strip a trailing state name or code from ``head``.

    A bare two-letter code counts only when a zip follows it, or when a
    comma-separated city or a street number comes before it.
    """

    stripped = head.rstrip(" ,")
    for name in sorted(STATE_ABBREVIATIONS, key=len, reverse=True):
        if stripped.endswith(" " + name) or stripped == name:
            return stripped[: -len(name)].rstrip(" ,"), STATE_ABBREVIATIONS[name]
    match = re.search(r"(?:^|[ ,])([a-z]{2})$", stripped)
    if match is None or match.group(1).upper() not in _STATE_CODES:
        return stripped, None
    before = stripped[: match.start(1)].rstrip(" ")
    if not zip_follows:
        anchored = before.endswith(",") or bool(re.search(r"\d", before))
        if not anchored or match.group(1) in AMBIGUOUS_STATE_CODES:
            return stripped, None
    return before.rstrip(" ,"), match.group(1).upper()


def _clean_city(words: Sequence[str]) -> str | None:
    kept = [word.strip(",'") for word in words if word.strip(",'")]
    while kept and kept[0] in ADDRESS_FILLER:
        kept.pop(0)
    kept = [word for word in kept if word.isalpha() or "'" in word or "-" in word]
    if not kept or len(kept) > 4:
        return None
    return _capitalize(kept)


def _parse_street(rest: Sequence[str], number: str) -> tuple[str, int] | None:
    """Return (line1, tokens consumed) when ``rest`` starts with a street name and suffix."""

    for index, token in enumerate(rest):
        bare = token.strip(",")
        if index == 0:
            if not bare.isalpha() and not re.fullmatch(r"\d+(st|nd|rd|th)", bare):
                return None
            continue
        if bare in STREET_SUFFIXES:
            name_words = [word.strip(",") for word in rest[:index]]
            line1 = f"{number} {_capitalize(name_words)} {STREET_SUFFIXES[bare]}"
            consumed = index + 1
            if not token.endswith(",") and consumed < len(rest):
                following = rest[consumed].strip(",")
                if following in DIRECTIONALS:
                    line1 += " " + _DIRECTIONAL_ABBREVIATIONS.get(following, following.upper())
                    consumed += 1
            return line1, consumed
        if index >= 5 or token.endswith(","):
            return None
    return None


def _parse_unit(rest: Sequence[str]) -> tuple[str | None, int]:
    if len(rest) >= 2 and rest[0].strip(",") in UNIT_WORDS:
        return f"Apt {rest[1].strip(',').upper()}", 2
    if rest and rest[0].startswith("#") and len(rest[0]) > 1:
        return f"Apt {rest[0][1:].strip(',').upper()}", 1
    return None, 0


def _street_candidates(head: str) -> list[tuple[str, list[str]]]:
    tokens = head.split(" ")
    candidates = []
    for index, token in enumerate(tokens):
        if re.fullmatch(r"\d{1,6}[a-z]?,?", token) and index + 1 < len(tokens):
            candidates.append((token.strip(",").upper(), tokens[index + 1 :]))
    candidates.reverse()
    return candidates


def _combined_address(head: str, state: str | None, zip_code: str) -> AddressMatch | None:
    for number, rest in _street_candidates(head):
        street = _parse_street(rest, number)
        if street is not None:
            line1, consumed = street
            line2, unit_consumed = _parse_unit(rest[consumed:])
            city = _clean_city(rest[consumed + unit_consumed :])
            if city:
                return AddressMatch(line1=line1, line2=line2, city=city, state=state, zip=zip_code)
            continue

        # No recognised suffix: accept "<number> <street words>, <city>" when a comma separates them.
        joined = " ".join(rest)
        if "," in joined:
            street_part, _, city_part = joined.partition(",")
            street_words = street_part.split()
            city = _clean_city(city_part.replace(",", " ").split())
            if street_words and all(word.isalpha() for word in street_words) and len(street_words) <= 4 and city:
                return AddressMatch(
                    line1=f"{number} {_capitalize(street_words)}",
                    city=city,
                    state=state,
                    zip=zip_code,
                )
    return None


def extract_street(text: str) -> str | None:
    """Relaxed fallback: a street line on its own ("123 Main Street")."""

    normalized = _address_text(text)
    for number, rest in _street_candidates(normalized):
        street = _parse_street(rest, number)
        if street is not None:
            return street[0]
    return None


def extract_city(text: str) -> str | None:
    """A city named on its own, as in an answer to "What city is that in?"."""

    region = extract_region(text)
    if region is not None and region.city:
        return region.city
    head, _ = _split_state(_address_text(text))
    words = head.replace(",", " ").split()
    if len(words) > 1 and words[-1] in _STATE_CODES_LOWER and words[-1] not in AMBIGUOUS_STATE_CODES:
        words = words[:-1]
    return _clean_city(words) if 0 < len(words) <= 5 else None


def extract_zip(text: str) -> str | None:
    match = re.search(r"\b(\d{5})(?:-\d{4})?\b", _address_text(text))
    if match:
        return match.group(1)
    digits = spoken_digits(text)
    return digits if len(digits) == 5 else None


def extract_region(text: str) -> AddressMatch | None:
    """Relaxed fallback: city / state / zip without a street line."""

    normalized = _address_text(text)
    zip_match = None
    for zip_match in re.finditer(r"\b(\d{5})(?:-\d{4})?\b", normalized):
        pass
    if zip_match is None:
        _, state = _split_state(normalized)
        return AddressMatch(state=state) if state else None

    head, state = _split_state(normalized[: zip_match.start()], zip_follows=True)
    segment = head.split(",")[-1].split()
    city_words = [word for word in segment if word not in ADDRESS_FILLER][-2:]
    city = _clean_city(city_words) if city_words and not any(ch.isdigit() for ch in "".join(city_words)) else None
    return AddressMatch(city=city, state=state, zip=zip_match.group(1))


def extract_address(text: str) -> AddressMatch | None:
    normalized = _address_text(text)
    if not normalized:
        return None

    zip_matches = list(re.finditer(r"\b(\d{5})(?:-\d{4})?\b", normalized))
    for zip_match in reversed(zip_matches):
        head, state = _split_state(normalized[: zip_match.start()], zip_follows=True)
        combined = _combined_address(head, state, zip_match.group(1))
        if combined is not None:
            return combined

    line1 = extract_street(text)
    region = extract_region(text) if zip_matches or _split_state(normalized)[1] else None
    if line1 is None and region is None:
        return None
    if region is None:
        return AddressMatch(line1=line1)
    city = region.city
    if line1 is not None and city is not None and city.lower() in line1.lower():
        city = None
    return AddressMatch(line1=line1, city=city, state=region.state, zip=region.zip)


# --------------------------------------------------------------------------- #
# Date / time / window
# --------------------------------------------------------------------------- #


@dataclass(slots=True, frozen=True)
class ScheduleMatch:
    date: str | None = None
    time: str | None = None
    window: str | None = None

    def as_slots(self) -> dict[str, str]:
        return {
            name: value
            for name, value in (
                ("preferred_date", self.date),
                ("preferred_time", self.time),
                ("preferred_window", self.window),
            )
            if value
        }


def next_weekday(today: date, weekday: int) -> date:
    """The next future occurrence of ``weekday``, 1 to 7 days after ``today``."""

    days_ahead = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=days_ahead)


def _relative_date(text: str, today: date) -> date | None:
    if "day after tomorrow" in text:
        return today + timedelta(days=2)
    if re.search(r"\btomorrow\b", text):
        return today + timedelta(days=1)
    if re.search(r"\b(today|tonight|this (?:morning|afternoon|evening))\b", text):
        return today

    match = re.search(r"\b(?:next |this |on |coming )?(" + "|".join(WEEKDAYS) + r")\b", text)
    if match:
        return next_weekday(today, WEEKDAYS[match.group(1)])

    match = re.search(
        r"\b(" + "|".join(sorted(MONTHS, key=len, reverse=True)) + r")\s+(\d{1,2})(?:st|nd|rd|th)?\b",
        text,
    )
    if match:
        return _future_date(today, MONTHS[match.group(1)], int(match.group(2)))

    match = re.search(r"\b(\d{1,2})/(\d{1,2})\b", text)
    if match:
        return _future_date(today, int(match.group(1)), int(match.group(2)))
    return None


def _future_date(today: date, month: int, day: int) -> date | None:
    try:
        candidate = date(today.year, month, day)
        if candidate < today:
            candidate = date(today.year + 1, month, day)
    except ValueError:
        return None
    return candidate


def _clock_time(text: str) -> tuple[int, int] | None:
    if re.search(r"\bnoon\b", text):
        return 12, 0

    match = re.search(r"\b(\d{1,2}):(\d{2})\s*(am|pm|a m|p m)?\b", text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        return _resolve_hour(hour, minute, match.group(3))

    match = re.search(r"\b(\d{1,2})\s*(am|pm|a m|p m)\b", text)
    if match:
        return _resolve_hour(int(match.group(1)), 0, match.group(2))

    match = re.search(r"\b(?:at|around|by|about) (\d{1,2})(?: o'?clock)?\b(?![:\d])", text) or re.search(
        r"\b(\d{1,2}) o'?clock\b", text
    )
    if match:
        return _resolve_hour(int(match.group(1)), 0, None)
    return None


def _resolve_hour(hour: int, minute: int, meridiem: str | None) -> tuple[int, int] | None:
    if minute > 59 or hour > 23:
        return None
    if meridiem:
        meridiem = meridiem.replace(" ", "")
        if hour == 0 or hour > 12:
            return None
        if meridiem == "pm" and hour != 12:
            hour += 12
        if meridiem == "am" and hour == 12:
            hour = 0
        return hour, minute
    if hour == 0 or hour >= 13:
        return hour, minute
    # Bare service-hour guesses: "at 2" means the afternoon.
    if 1 <= hour <= 6:
        return hour + 12, minute
    return hour, minute


def _window(text: str) -> str | None:
    if re.search(r"\b(any ?time|all day|flexible|whenever|either)\b", text):
        return FLEXIBLE
    if re.search(r"\bmorning\b", text):
        return MORNING
    if re.search(r"\b(afternoon|evening|tonight)\b", text):
        return AFTERNOON
    return None


def has_scheduling_intent(text: str) -> bool:
    lowered = _normalize(text)
    return any(keyword in lowered for keyword in SCHEDULING_INTENT)


def extract_schedule(text: str, now: datetime) -> ScheduleMatch | None:
    normalized = _normalize(text)
    today = now.date()

    found_date = _relative_date(normalized, today)
    clock = _clock_time(normalized)
    window = _window(normalized)
    time_text = f"{clock[0]:02d}:{clock[1]:02d}" if clock else None
    if window is None and clock is not None:
        window = MORNING if clock[0] < 12 else AFTERNOON

    if found_date is None and (clock or window) and has_scheduling_intent(normalized):
        end_hour = clock[0] if clock else WINDOW_ENDS[window]  # type: ignore[index]
        found_date = today if now.hour < end_hour else today + timedelta(days=1)

    if found_date is None and clock is None and window is None:
        return None
    return ScheduleMatch(
        date=found_date.isoformat() if found_date else None,
        time=time_text,
        window=window,
    )


# --------------------------------------------------------------------------- #
# Yes / no
# --------------------------------------------------------------------------- #


class YesNo(str, Enum):
    AFFIRM = "affirm"
    NEGATE = "negate"
    NEITHER = "neither"


NEGATION_PHRASES = (
    "that's not", "that is not", "thats not", "not right", "not correct", "not quite",
    "that's wrong", "that is wrong", "thats wrong", "not it",
)
NEGATION_WORDS = {"no", "nope", "nah", "negative", "wrong", "incorrect"}
AFFIRM_PHRASES = (
    "that's right", "that is right", "thats right", "that's correct", "that is correct",
    "sounds good", "you got it", "go ahead", "that works", "looks good", "all good",
)
AFFIRM_WORDS = {
    "yes", "yeah", "yep", "yup", "ya", "yah", "correct", "right", "sure", "ok", "okay",
    "absolutely", "perfect", "exactly", "affirmative", "definitely",
}


def classify_yes_no(text: str) -> YesNo:
    normalized = re.sub(r"[^a-z' ]", " ", text.lower().replace("’", "'"))
    normalized = " " + re.sub(r"\s+", " ", normalized).strip() + " "

    negated = any(f" {phrase} " in normalized for phrase in NEGATION_PHRASES)
    negated = negated or bool(set(normalized.split()) & NEGATION_WORDS)

    # "not right", "not sure": whatever follows "not" is never an affirmation.
    remainder = re.sub(r" not \S+", " ", normalized)
    for phrase in NEGATION_PHRASES:
        remainder = remainder.replace(f" {phrase} ", " ")
    affirmed = bool(set(remainder.split()) & AFFIRM_WORDS) or any(
        f" {phrase} " in remainder for phrase in AFFIRM_PHRASES
    )

    if negated and not affirmed:
        return YesNo.NEGATE
    if affirmed and not negated:
        return YesNo.AFFIRM
    return YesNo.NEITHER


# --------------------------------------------------------------------------- #
# Pricing, emergencies, problems
# --------------------------------------------------------------------------- #

PRICING_SERVICE_WORDS = (
    "diagnostic", "maintenance", "visit", "service call", "tune-up", "tune up",
    "inspection", "trip charge", "fee",
)
DOLLAR_PATTERN = re.compile(
    r"\$\s?\d+|\b\d+\s*(?:dollars|bucks)\b|\b(?:twenty|thirty|forty|fifty|sixty|seventy|eighty|ninety|hundred)\s+dollars\b",
    re.IGNORECASE,
)
EMERGENCY_PATTERN = re.compile(
    r"\b(smell(?:s|ing)? (?:like )?gas|gas (?:smell|leak)|smoke\b(?! detector)|smoking|sparks?|sparking|"
    r"burning smell|smell(?:s|ing)? (?:like )?burning|something(?:'s| is)? burning|carbon monoxide|"
    r"co (?:alarm|detector)|on fire|caught fire|a fire|flames?)\b",
    re.IGNORECASE,
)
PROBLEM_PATTERN = re.compile(
    r"\b(not (?:cooling|heating|working|blowing|turning on|coming on)|isn'?t (?:working|cooling|heating)|"
    r"won'?t (?:turn on|start|cool|heat|come on)|no (?:heat|air|ac|a c|cooling|cold air|hot air)|"
    r"broken|broke|leak(?:s|ing)?|frozen|froze|iced? up|stopped working|making (?:a )?(?:\w+ )?noise|"
    r"blowing (?:warm|hot) air|died)\b",
    re.IGNORECASE,
)


def mentions_pricing(text: str | None) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return bool(DOLLAR_PATTERN.search(text)) and any(word in lowered for word in PRICING_SERVICE_WORDS)


def pricing_disclosed_in(utterance: str | None, recent_assistant_lines: Sequence[str] = ()) -> bool:
    return mentions_pricing(utterance) or any(mentions_pricing(line) for line in recent_assistant_lines)


def detect_emergency(text: str) -> str | None:
    match = EMERGENCY_PATTERN.search(text or "")
    return match.group(1).lower() if match else None


def problem_reported(text: str) -> bool:
    return bool(PROBLEM_PATTERN.search(text or ""))


# --------------------------------------------------------------------------- #
# Names
# --------------------------------------------------------------------------- #

NAME_STOPWORDS = {
    "and", "but", "so", "my", "the", "a", "an", "i", "i'm", "im", "calling", "here", "with",
    "from", "at", "about", "because", "having", "not", "is", "it", "its", "it's", "our", "we",
    "yes", "no", "yeah", "okay", "ok", "sure", "hi", "hello", "hey", "thanks", "thank", "you",
    "please", "um", "uh", "ac", "unit", "furnace", "heat", "air", "broken", "working", "that",
    "this", "just", "been", "was", "were", "am", "are", "phone", "number", "address",
}
_EXPLICIT_NAME = re.compile(r"\b(?:my name is|my name's|name is|name's)\s+(.+)")
_ASKED_NAME = re.compile(r"\b(?:this is|it's|it is|i am|i'm|im|call me|you can call me)\s+(.+)")


def _name_from(candidate: str) -> str | None:
    words: list[str] = []
    for word in candidate.split():
        bare = word.strip(",'")
        if bare in NAME_STOPWORDS or not re.fullmatch(r"[a-z][a-z'-]*", bare):
            break
        words.append(bare)
        if len(words) == 4:
            break
    if not words or (len(words) == 1 and len(words[0]) < 2):
        return None
    return _capitalize(words)


def extract_name(text: str, asked: bool = False) -> str | None:
    normalized = re.sub(r"[^a-z' ]", " ", text.lower().replace("’", "'"))
    normalized = re.sub(r"\s+", " ", normalized).strip()

    match = _EXPLICIT_NAME.search(normalized)
    if match:
        return _name_from(match.group(1))
    if not asked:
        return None
    match = _ASKED_NAME.search(normalized)
    if match:
        return _name_from(match.group(1))
    words = normalized.split()
    if 1 <= len(words) <= 4 and not set(words) & NAME_STOPWORDS:
        return _name_from(normalized)
    return None


# --------------------------------------------------------------------------- #
# Corrections and question targets
# --------------------------------------------------------------------------- #


@dataclass(slots=True, frozen=True)
class Correction:
    """A caller correcting a captured value; ``field`` is None when no field was named."""

    field: str | None


CORRECTION_CUE = re.compile(
    r"\b(actually|correction|i meant|i mean|i said|that's wrong|that is wrong|thats wrong|"
    r"not right|that's not right|wrong|change (?:my|the))\b"
)
FIELD_KEYWORDS = (
    (re.compile(r"\bzip(?: code)?\b"), "service_address.zip"),
    (re.compile(r"\bcity\b"), "service_address.city"),
    (re.compile(r"\b(?:address|street|house number|street number)\b"), "service_address"),
    (re.compile(r"\b(?:phone|number|callback|cell)\b"), "callback_number"),
    (re.compile(r"\bname\b"), "full_name"),
    (re.compile(r"\b(?:date|day|time|window|morning|afternoon|appointment)\b"), "preferred_schedule"),
)


def field_mentioned(text: str) -> str | None:
    normalized = _normalize(text)
    for pattern, path in FIELD_KEYWORDS:
        if pattern.search(normalized):
            return path
    return None


def detect_correction(text: str) -> Correction | None:
    if not CORRECTION_CUE.search(_normalize(text)):
        return None
    return Correction(field=field_mentioned(text))


QUESTION_TARGETS = (
    (re.compile(r"\bzip\b"), "service_address.zip"),
    (re.compile(r"\bcity\b"), "service_address.city"),
    (re.compile(r"\baddress\b"), "service_address"),
    (re.compile(r"\b(?:callback number|phone|number)\b"), "callback_number"),
    (re.compile(r"\bname\b"), "full_name"),
    (re.compile(r"\b(?:what day|which day|date|morning or afternoon|when would|what time)\b"), "preferred_schedule"),
)


def field_for_question(question: str | None) -> str | None:
    """Which slot the previous assistant prompt was asking for, if any."""

    if not question:
        return None
    lowered = question.lower()
    # Read-backs and summaries mention several fields; they are not questions about one.
    if "is everything correct" in lowered or "let me read that back" in lowered:
        return None
    for pattern, path in QUESTION_TARGETS:
        if pattern.search(lowered):
            return path
    return None
