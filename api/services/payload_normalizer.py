"""Tolerant, schema-aware reshaping of a parsed dashboard candidate.

``normalize`` repairs shape (types, ranges, cardinalities, enumerations) in
place and never raises. It does not invent missing text: absent sections
stay absent so the validator can reject them.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .constants import (
    ACTIVE_TAB_DEFAULT,
    BEST_FLOW_COUNT,
    BEST_HOURS_COUNT,
    ENERGY_SCORE_RANGE,
    HANDLE_GENTLY_COUNT,
    KEY_DATES_COUNT,
    LUCKY_NUMBER_RANGE,
    MAX_TRANSITS,
    POWER_MONTHS_COUNT,
    QUARTER_LABELS,
    RATING_RANGE,
    SECTION_TITLES,
    STARTERS_COUNT,
    TEXT_MAX_LENGTH,
    TRANSIT_TONES,
)

_LINE_BREAKS = re.compile(r"[ \t]*[\r\n]+[ \t]*")
_NUMERIC = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

SOFT_TONE_MARKERS = ("gentle", "soft", "hope", "uplift")
INTENSE_TONE_MARKERS = ("intense", "strong", "volatile", "disrupt")

_CANONICAL_TITLES = {title.lower(): title for title in SECTION_TITLES}
_CANONICAL_QUARTERS = {label.lower(): label for label in QUARTER_LABELS}


def _is_mapping(value: Any) -> bool:
    return isinstance(value, Mapping)


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def coerce_int(value: Any) -> Optional[int]:
    """Numbers and numeric-looking strings to int (half-up); else ``None``."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return int(math.floor(value + 0.5))
    if isinstance(value, str):
        candidate = value.strip()
        if not _NUMERIC.match(candidate):
            return None
        number = float(candidate)
        if not math.isfinite(number):
            return None
        return int(math.floor(number + 0.5))
    return None


def clamp_int(value: Any, bounds: Tuple[int, int]) -> Optional[int]:
    number = coerce_int(value)
    if number is None:
        return None
    low, high = bounds
    return min(high, max(low, number))


def normalize_tone(value: Any) -> str:
    if not isinstance(value, str):
        return "neutral"
    lowered = value.strip().lower()
    if lowered in TRANSIT_TONES:
        return lowered
    if any(marker in lowered for marker in SOFT_TONE_MARKERS):
        return "soft"
    if any(marker in lowered for marker in INTENSE_TONE_MARKERS):
        return "intense"
    return "neutral"


def trim_text(value: str, width: int = TEXT_MAX_LENGTH) -> str:
    """Collapse line breaks and keep the text within ``width`` characters."""

    text = _LINE_BREAKS.sub(" ", value)
    if len(text) <= width:
        return text

    kept = ""
    for sentence in re.split(r"(?<=[.!?])\s+", text):
        candidate = f"{kept} {sentence}" if kept else sentence
        if len(candidate) > width:
            break
        kept = candidate
    if kept:
        return kept

    words: List[str] = []
    length = 0
    for word in text.split():
        extra = len(word) if not words else len(word) + 1
        if length + extra > width:
            break
        words.append(word)
        length += extra
    trimmed = " ".join(words).rstrip(",;:-")
    return trimmed or text[:width].rstrip()


def _fixed_length(
    value: List[Any],
    count: int,
    shape: Callable[[Any], Any],
    placeholder: Callable[[], Any],
) -> List[Any]:
    shaped = [shape(item) for item in value[:count]]
    while len(shaped) < count:
        shaped.append(placeholder())
    return shaped


def _string_entry(item: Any) -> str:
    return _text(item)


def _record_entry(keys: Sequence[str]) -> Callable[[Any], Dict[str, Any]]:
    def shape(item: Any) -> Dict[str, Any]:
        if not _is_mapping(item):
            return {key: "" for key in keys}
        shaped = dict(item)
        for key in keys:
            shaped[key] = _text(item.get(key))
        return shaped

    return shape


def _empty_record(keys: Sequence[str]) -> Callable[[], Dict[str, str]]:
    return lambda: {key: "" for key in keys}


def _set_clamped(container: Dict[str, Any], key: str, bounds: Tuple[int, int]) -> None:
    if key not in container:
        return
    clamped = clamp_int(container[key], bounds)
    if clamped is not None:
        container[key] = clamped


def canonical_sections(sections: List[Any]) -> List[Dict[str, str]]:
    """One entry per known title in display order; a repeated title keeps its last body."""

    bodies: Dict[str, str] = {}
    for entry in sections:
        if not _is_mapping(entry):
            continue
        title = _CANONICAL_TITLES.get(_text(entry.get("title")).strip().lower())
        if title is None:
            continue
        bodies[title] = _text(entry.get("body"))
    return [{"title": title, "body": bodies.get(title, "")} for title in SECTION_TITLES]


def canonical_quarters(quarters: List[Any]) -> List[Dict[str, str]]:
    focus_by_label: Dict[str, str] = {}
    for entry in quarters:
        if not _is_mapping(entry):
            continue
        label = _CANONICAL_QUARTERS.get(_text(entry.get("label")).strip().lower())
        if label is None:
            continue
        focus_by_label[label] = _text(entry.get("focus"))
    return [{"label": label, "focus": focus_by_label.get(label, "")} for label in QUARTER_LABELS]


def _normalize_transit(item: Any) -> Dict[str, Any]:
    if not _is_mapping(item):
        return {"title": "", "tone": "neutral", "meaning": ""}
    shaped = dict(item)
    shaped["title"] = _text(item.get("title"))
    shaped["tone"] = normalize_tone(item.get("tone"))
    shaped["meaning"] = _text(item.get("meaning"))
    return shaped


def _normalize_today(today: Dict[str, Any]) -> None:
    _set_clamped(today, "energyScore", ENERGY_SCORE_RANGE)

    ratings = today.get("ratings")
    if _is_mapping(ratings):
        for key in ("love", "work", "money", "health"):
            _set_clamped(ratings, key, RATING_RANGE)

    lucky = today.get("lucky")
    if _is_mapping(lucky):
        _set_clamped(lucky, "number", LUCKY_NUMBER_RANGE)

    hour_keys = ("label", "start", "end")
    if isinstance(today.get("bestHours"), list):
        today["bestHours"] = _fixed_length(
            today["bestHours"], BEST_HOURS_COUNT, _record_entry(hour_keys), _empty_record(hour_keys)
        )

    if isinstance(today.get("sections"), list):
        today["sections"] = canonical_sections(today["sections"])


def _normalize_cosmic_weather(weather: Dict[str, Any]) -> None:
    if isinstance(weather.get("transits"), list):
        weather["transits"] = [_normalize_transit(item) for item in weather["transits"][:MAX_TRANSITS]]


def _normalize_compatibility(compatibility: Dict[str, Any]) -> None:
    for key, count in (("bestFlowWith", BEST_FLOW_COUNT), ("handleGentlyWith", HANDLE_GENTLY_COUNT)):
        if isinstance(compatibility.get(key), list):
            compatibility[key] = _fixed_length(compatibility[key], count, _string_entry, str)


def _normalize_journal(journal: Dict[str, Any]) -> None:
    if isinstance(journal.get("starters"), list):
        journal["starters"] = _fixed_length(journal["starters"], STARTERS_COUNT, _string_entry, str)


def _normalize_month(month: Dict[str, Any]) -> None:
    date_keys = ("dateLabel", "title", "note")
    if isinstance(month.get("keyDates"), list):
        month["keyDates"] = _fixed_length(
            month["keyDates"], KEY_DATES_COUNT, _record_entry(date_keys), _empty_record(date_keys)
        )


def _normalize_year(year: Dict[str, Any]) -> None:
    if isinstance(year.get("quarters"), list):
        year["quarters"] = canonical_quarters(year["quarters"])
    if isinstance(year.get("powerMonths"), list):
        year["powerMonths"] = _fixed_length(year["powerMonths"], POWER_MONTHS_COUNT, _string_entry, str)


_SECTION_NORMALIZERS: Tuple[Tuple[str, Callable[[Dict[str, Any]], None]], ...] = (
    ("today", _normalize_today),
    ("cosmicWeather", _normalize_cosmic_weather),
    ("compatibility", _normalize_compatibility),
    ("journalRitual", _normalize_journal),
    ("month", _normalize_month),
    ("year", _normalize_year),
)


def _tidy_strings(value: Any) -> Any:
    if isinstance(value, str):
        return trim_text(value)
    if isinstance(value, list):
        for index, item in enumerate(value):
            value[index] = _tidy_strings(item)
        return value
    if isinstance(value, dict):
        for key, item in value.items():
            value[key] = _tidy_strings(item)
        return value
    return value


def normalize(parsed: Any) -> Any:
    """Reshape ``parsed`` toward the dashboard schema and return it."""

    if not isinstance(parsed, dict):
        return parsed

    tabs = parsed.get("tabs")
    if not _is_mapping(tabs) or tabs.get("activeDefault") != ACTIVE_TAB_DEFAULT:
        parsed["tabs"] = {"activeDefault": ACTIVE_TAB_DEFAULT}

    for key, normalizer in _SECTION_NORMALIZERS:
        section = parsed.get(key)
        if isinstance(section, dict):
            normalizer(section)

    _tidy_strings(parsed)
    return parsed
