"""Prompt construction for the daily dashboard model call."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from functools import lru_cache
from typing import Any, Dict, Optional

from jinja2 import Environment, Template

from .constants import ACTIVE_TAB_DEFAULT, QUARTER_LABELS, SECTION_TITLES, TRANSIT_TONES

FILL = "__FILL__"
FILL_SCORE = "__FILL_INT_0_100__"
FILL_RATING = "__FILL_INT_0_5__"
FILL_INT = "__FILL_INT__"
FILL_HHMM = "__FILL_HHMM__"


SYSTEM_PROMPT = (
    "You are a warm, modern astrologer-writer. "
    "Write gentle, confident guidance with no doom, guarantees, or medical or legal claims. "
    "Respond with strict JSON only: one object, double-quoted keys and strings, "
    "no markdown, no code fences, no commentary. Stop immediately after the final closing brace."
)


@dataclass(frozen=True)
class PromptContext:
    name: str
    birthdate: str
    sign: str
    date_iso: str
    locale_date_label: str
    generated_at_iso: str
    mood: str
    personality: str


def build_template(context: PromptContext) -> str:
    """Compact JSON skeleton with ``meta`` filled and sentinels everywhere else."""

    template: Dict[str, Any] = {
        "meta": {
            "dateISO": context.date_iso,
            "localeDateLabel": context.locale_date_label,
            "generatedAtISO": context.generated_at_iso,
            "sign": context.sign,
            "name": context.name,
        },
        "tabs": {"activeDefault": ACTIVE_TAB_DEFAULT},
        "today": {
            "headline": FILL,
            "subhead": FILL,
            "theme": FILL,
            "energyScore": FILL_SCORE,
            "bestHours": [
                dict(label=FILL, start=FILL_HHMM, end=FILL_HHMM),
                dict(label=FILL, start=FILL_HHMM, end=FILL_HHMM),
            ],
            "ratings": {key: FILL_RATING for key in ("love", "work", "money", "health")},
            "lucky": {"color": FILL, "number": FILL_INT, "symbol": FILL},
            "doDont": {"do": FILL, "dont": FILL},
            "sections": [{"title": title, "body": FILL} for title in SECTION_TITLES],
        },
        "cosmicWeather": {
            "moon": {"phase": FILL, "sign": FILL},
            "transits": [
                {"title": FILL, "tone": "|".join(TRANSIT_TONES), "meaning": FILL},
                {"title": FILL, "tone": "|".join(TRANSIT_TONES), "meaning": FILL},
            ],
            "affectsToday": FILL,
        },
        "compatibility": {
            "bestFlowWith": [FILL, FILL],
            "handleGentlyWith": [FILL],
            "tips": {"conflict": FILL, "affection": FILL},
        },
        "journalRitual": {
            "prompt": FILL,
            "starters": [FILL, FILL, FILL],
            "mantra": FILL,
            "ritual": FILL,
            "bestDayForDecisions": {"dayLabel": FILL, "reason": FILL},
        },
        "week": {
            "arc": {"start": FILL, "midweek": FILL, "weekend": FILL},
            "keyOpportunity": FILL,
            "keyCaution": FILL,
            "bestDayFor": {"decisions": FILL, "conversations": FILL, "rest": FILL},
        },
        "month": {
            "theme": FILL,
            "keyDates": [dict(dateLabel=FILL, title=FILL, note=FILL) for _ in range(3)],
            "newMoon": {"dateLabel": FILL, "intention": FILL},
            "fullMoon": {"dateLabel": FILL, "release": FILL},
            "oneThing": FILL,
        },
        "year": {
            "headline": FILL,
            "quarters": [{"label": label, "focus": FILL} for label in QUARTER_LABELS],
            "powerMonths": [FILL, FILL],
            "challengeMonth": {"month": FILL, "guidance": FILL},
        },
    }
    return json.dumps(template, ensure_ascii=False, separators=(",", ":"))


_USER_CONTEXT = """USER CONTEXT:
name={{ name }}
birthdate={{ birthdate }}
sunSign={{ sign }}
dateISO={{ date_iso }}
{% if locale_date_label %}
localeDateLabel={{ locale_date_label }}
{% endif %}
mood={{ mood }}
personality={{ personality }}
"""

_OUTPUT_CONTRACT = """OUTPUT CONTRACT (MUST FOLLOW):
- Return ONE JSON object only. No markdown. No commentary.
- Strict JSON: double-quote every property name and every string. No trailing commas.
- Use JSON numbers (not strings) for numeric fields.
- Do NOT add or remove keys. Match TEMPLATE_JSON keys exactly.
- Replace every __FILL value; keep each text value short (typically 6-18 words).
- Avoid newline characters inside strings.
"""

_STRUCTURE_RULES = """STRUCTURE RULES:
- today.bestHours: exactly 2 items; time format is HH:MM (24h).
- today.sections: exactly 4 items titled {{ section_titles }} (in that order).
- today.energyScore: integer 0-100. today.ratings.*: integers 0-5.
- cosmicWeather.transits: at most 2 items; tone is one of {{ tones }}.
- compatibility.bestFlowWith: exactly 2 signs. compatibility.handleGentlyWith: exactly 1 sign.
- journalRitual.starters: exactly 3 items. month.keyDates: exactly 3 items.
- year.quarters: {{ quarter_labels }} in order. year.powerMonths: exactly 2 months.
"""

DASHBOARD_PROMPT_TEMPLATE = (
    "ROLE:\n"
    "You write premium, modern daily astrology: gentle, confident and creative.\n\n"
    + _OUTPUT_CONTRACT
    + "\n"
    + _USER_CONTEXT
    + "\n"
    + _STRUCTURE_RULES
    + "\n"
    "TEMPLATE_JSON:\n"
    "{{ template_json }}\n\n"
    "Now output the completed JSON only."
)

REGENERATE_PROMPT_TEMPLATE = (
    "ROLE:\n"
    "You write premium, modern daily astrology: gentle, confident and creative.\n\n"
    "NOTE: your previous answer was cut off or invalid. Start over from TEMPLATE_JSON "
    "and stay compact so the whole object fits.\n\n"
    + _OUTPUT_CONTRACT
    + "\n"
    + _USER_CONTEXT
    + "\n"
    + _STRUCTURE_RULES
    + "\n"
    "TEMPLATE_JSON:\n"
    "{{ template_json }}\n\n"
    "Now output the completed JSON only."
)

REPAIR_PROMPT_TEMPLATE = (
    "ROLE:\n"
    "You are a careful JSON formatter.\n\n"
    "TASK:\n"
    "- Return valid JSON only.\n"
    "- Conform exactly to TEMPLATE_JSON keys and types.\n"
    "- Do not invent new keys.\n"
    "- If a field is missing, fill it with a short, soothing value consistent with the user context.\n"
    "- Use JSON numbers for numeric fields.\n\n"
    + _USER_CONTEXT
    + "\n"
    "TEMPLATE_JSON:\n"
    "{{ template_json }}\n\n"
    "MODEL_OUTPUT:\n"
    "{{ model_output }}\n\n"
    "Output the fixed JSON only."
)


_jinja_env: Optional[Environment] = None


def _get_jinja_env() -> Environment:
    global _jinja_env
    if _jinja_env is None:
        _jinja_env = Environment(autoescape=False, trim_blocks=True, lstrip_blocks=True)
    return _jinja_env


@lru_cache(maxsize=16)
def _compile_template(source: str) -> Template:
    return _get_jinja_env().from_string(source)


def _render(source: str, context: PromptContext, **extra: Any) -> str:
    values = asdict(context)
    values.update(
        section_titles=", ".join(SECTION_TITLES),
        tones=", ".join(TRANSIT_TONES),
        quarter_labels=", ".join(QUARTER_LABELS),
    )
    values.update(extra)
    return _compile_template(source).render(**values)


def build_dashboard_prompt(context: PromptContext, template_json: Optional[str] = None) -> str:
    return _render(DASHBOARD_PROMPT_TEMPLATE, context, template_json=template_json or build_template(context))


def build_regenerate_prompt(context: PromptContext, template_json: str) -> str:
    return _render(REGENERATE_PROMPT_TEMPLATE, context, template_json=template_json)


def build_repair_prompt(context: PromptContext, template_json: str, model_output: str) -> str:
    """Ask the model to fix its own output; the broken text is passed through verbatim."""

    return _render(
        REPAIR_PROMPT_TEMPLATE,
        context,
        template_json=template_json,
        model_output=model_output,
        locale_date_label="",
    )
