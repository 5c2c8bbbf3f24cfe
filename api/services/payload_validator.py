"""Strict structural validation of a normalized dashboard candidate.

The JSON schema below mirrors :class:`api.schemas.dashboard.DashboardPayload`.
``jsonschema`` reports every error at once; ``validate`` ranks them so the
first violation returned is always the most structural one (missing sections
before wrong types, wrong types before bad cardinalities, cardinalities before
enumerations), and only then scans for unresolved template placeholders.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from jsonschema import Draft7Validator
from jsonschema.exceptions import ValidationError as SchemaError
from pydantic import ValidationError

from ..schemas.dashboard import DashboardPayload
from .constants import (
    ACTIVE_TAB_DEFAULT,
    BEST_FLOW_COUNT,
    BEST_HOURS_COUNT,
    ENERGY_SCORE_RANGE,
    HANDLE_GENTLY_COUNT,
    KEY_DATES_COUNT,
    LUCKY_NUMBER_RANGE,
    MAX_TRANSITS,
    PLACEHOLDER_TOKEN,
    POWER_MONTHS_COUNT,
    QUARTER_LABELS,
    RATING_RANGE,
    SECTION_TITLES,
    STARTERS_COUNT,
    TEXT_MAX_LENGTH,
    TRANSIT_TONES,
)


ROOT_PATH = "(root)"

TEXT: Dict[str, Any] = {
    "type": "string",
    "maxLength": TEXT_MAX_LENGTH,
    "not": {"type": "string", "pattern": "[\\r\\n]"},
}


def _record(**properties: Any) -> Dict[str, Any]:
    return {"type": "object", "required": list(properties), "properties": properties}


def _integer(bounds: Tuple[int, int]) -> Dict[str, Any]:
    low, high = bounds
    return {"type": "integer", "minimum": low, "maximum": high}


def _exactly(items: Any, count: int) -> Dict[str, Any]:
    return {"type": "array", "items": items, "minItems": count, "maxItems": count}


_RATING = _integer(RATING_RANGE)

DASHBOARD_SCHEMA: Dict[str, Any] = _record(
    meta=_record(dateISO=TEXT, localeDateLabel=TEXT, generatedAtISO=TEXT, sign=TEXT, name=TEXT),
    tabs=_record(activeDefault={"type": "string", "const": ACTIVE_TAB_DEFAULT}),
    today=_record(
        headline=TEXT,
        subhead=TEXT,
        theme=TEXT,
        energyScore=_integer(ENERGY_SCORE_RANGE),
        bestHours=_exactly(_record(label=TEXT, start=TEXT, end=TEXT), BEST_HOURS_COUNT),
        ratings=_record(love=_RATING, work=_RATING, money=_RATING, health=_RATING),
        lucky=_record(color=TEXT, number=_integer(LUCKY_NUMBER_RANGE), symbol=TEXT),
        doDont=_record(do=TEXT, dont=TEXT),
        sections=_exactly(
            [
                _record(title={"type": "string", "const": title}, body=TEXT)
                for title in SECTION_TITLES
            ],
            len(SECTION_TITLES),
        ),
    ),
    cosmicWeather=_record(
        moon=_record(phase=TEXT, sign=TEXT),
        transits={
            "type": "array",
            "items": _record(
                title=TEXT,
                tone={"type": "string", "enum": list(TRANSIT_TONES)},
                meaning=TEXT,
            ),
            "maxItems": MAX_TRANSITS,
        },
        affectsToday=TEXT,
    ),
    compatibility=_record(
        bestFlowWith=_exactly(TEXT, BEST_FLOW_COUNT),
        handleGentlyWith=_exactly(TEXT, HANDLE_GENTLY_COUNT),
        tips=_record(conflict=TEXT, affection=TEXT),
    ),
    journalRitual=_record(
        prompt=TEXT,
        starters=_exactly(TEXT, STARTERS_COUNT),
        mantra=TEXT,
        ritual=TEXT,
        bestDayForDecisions=_record(dayLabel=TEXT, reason=TEXT),
    ),
    week=_record(
        arc=_record(start=TEXT, midweek=TEXT, weekend=TEXT),
        keyOpportunity=TEXT,
        keyCaution=TEXT,
        bestDayFor=_record(decisions=TEXT, conversations=TEXT, rest=TEXT),
    ),
    month=_record(
        theme=TEXT,
        keyDates=_exactly(_record(dateLabel=TEXT, title=TEXT, note=TEXT), KEY_DATES_COUNT),
        newMoon=_record(dateLabel=TEXT, intention=TEXT),
        fullMoon=_record(dateLabel=TEXT, release=TEXT),
        oneThing=TEXT,
    ),
    year=_record(
        headline=TEXT,
        quarters=_exactly(
            [
                _record(label={"type": "string", "const": label}, focus=TEXT)
                for label in QUARTER_LABELS
            ],
            len(QUARTER_LABELS),
        ),
        powerMonths=_exactly(TEXT, POWER_MONTHS_COUNT),
        challengeMonth=_record(month=TEXT, guidance=TEXT),
    ),
)

DASHBOARD_VALIDATOR = Draft7Validator(DASHBOARD_SCHEMA)


@dataclass(frozen=True)
class PayloadViolation:
    field_path: str
    reason: str


@dataclass
class ValidationOutcome:
    payload: Optional[DashboardPayload] = None
    violation: Optional[PayloadViolation] = None

    @property
    def is_valid(self) -> bool:
        return self.payload is not None and self.violation is None


def format_path(parts: Iterable[Union[str, int]]) -> str:
    """Render ``("today", "bestHours", 2)`` as ``today.bestHours[2]``."""

    rendered = ""
    for part in parts:
        if isinstance(part, int):
            rendered += f"[{part}]"
        elif rendered:
            rendered += f".{part}"
        else:
            rendered = str(part)
    return rendered or ROOT_PATH


_RANGE_VALIDATORS = {"minimum", "maximum", "not", "pattern", "maxLength", "type"}
_CARDINALITY_VALIDATORS = {"minItems", "maxItems"}
_ENUM_VALIDATORS = {"enum", "const"}

# Filled from the request, not from template sentinels; may echo user text.
_PREFILLED_SECTIONS = frozenset({"meta"})


def _rank(error: SchemaError) -> int:
    if error.validator == "type" and not error.absolute_path:
        return 0
    if error.validator == "required":
        return 1
    if error.validator == "type" and error.validator_value == "object":
        return 1
    if error.validator in _RANGE_VALIDATORS:
        return 2
    if error.validator in _CARDINALITY_VALIDATORS:
        return 3
    if error.validator in _ENUM_VALIDATORS:
        return 4
    return 5


def _describe(error: SchemaError) -> PayloadViolation:
    parts: List[Union[str, int]] = list(error.absolute_path)
    if error.validator == "required" and isinstance(error.instance, dict):
        missing = next((key for key in error.validator_value if key not in error.instance), None)
        if missing is not None:
            return PayloadViolation(format_path(parts + [missing]), "required field is missing")
    if error.validator == "type":
        expected = error.validator_value
        return PayloadViolation(format_path(parts), f"expected {expected}, got {type(error.instance).__name__}")
    if error.validator == "not":
        return PayloadViolation(format_path(parts), "text must be a single line")
    if error.validator in _CARDINALITY_VALIDATORS:
        count = len(error.instance) if isinstance(error.instance, list) else 0
        return PayloadViolation(format_path(parts), f"{error.validator} {error.validator_value}, got {count} items")
    return PayloadViolation(format_path(parts), error.message)


def first_schema_violation(obj: Any) -> Optional[PayloadViolation]:
    errors = list(DASHBOARD_VALIDATOR.iter_errors(obj))
    if not errors:
        return None
    # sorted() is stable, so ties keep the schema's own property order.
    errors = sorted(errors, key=_rank)
    return _describe(errors[0])


def find_placeholder(value: Any, path: Tuple[Union[str, int], ...] = ()) -> Optional[str]:
    """Path of the first string still carrying the template sentinel."""

    if isinstance(value, str):
        return format_path(path) if PLACEHOLDER_TOKEN in value else None
    if isinstance(value, list):
        for index, item in enumerate(value):
            found = find_placeholder(item, path + (index,))
            if found is not None:
                return found
    elif isinstance(value, dict):
        for key, item in value.items():
            found = find_placeholder(item, path + (key,))
            if found is not None:
                return found
    return None


def validate(obj: Any) -> ValidationOutcome:
    """Accept ``obj`` as a :class:`DashboardPayload` or report its first violation."""

    violation = first_schema_violation(obj)
    if violation is not None:
        return ValidationOutcome(violation=violation)

    placeholder_path = find_placeholder(
        {key: value for key, value in obj.items() if key not in _PREFILLED_SECTIONS}
    )
    if placeholder_path is not None:
        return ValidationOutcome(
            violation=PayloadViolation(placeholder_path, "unresolved template placeholder")
        )

    try:
        payload = DashboardPayload.model_validate(obj)
    except ValidationError as exc:
        first = exc.errors()[0]
        return ValidationOutcome(violation=PayloadViolation(format_path(first["loc"]), first["msg"]))
    return ValidationOutcome(payload=payload)
