"""Deterministic dashboard used when the model cannot produce a valid one.

Everything is drawn from fixed candidate lists with a small seeded PRNG, so
the same profile and date always yield byte-identical JSON. The text goes
through the regular sanitize/normalize/validate path like model output does.
"""

from __future__ import annotations

import json
import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, TypeVar

from ..schemas.dashboard import Profile
from .constants import (
    ACTIVE_TAB_DEFAULT,
    MONTH_NAMES,
    QUARTER_LABELS,
    SECTION_TITLES,
    SIGN_NAMES,
    WEEKDAY_NAMES,
)
from .payload_normalizer import trim_text
from .sampling import UINT32_MASK, fnv1a32
from .zodiac import locale_date_label, parse_iso_date, zodiac_sign

T = TypeVar("T")

GOLDEN_GAMMA = 0x9E3779B9

SYNODIC_MONTH_DAYS = 29.53059
REFERENCE_NEW_MOON = datetime(2000, 1, 6, 18, 14, tzinfo=timezone.utc)
EPOCH_DATE = date(1970, 1, 1)

MOON_PHASES = (
    "New Moon",
    "Waxing Crescent",
    "First Quarter",
    "Waxing Gibbous",
    "Full Moon",
    "Waning Gibbous",
    "Last Quarter",
    "Waning Crescent",
)


class SeededRng:
    """xorshift32 stream; ``next`` yields floats in ``[0, 1)`` at 1e-4 resolution."""

    def __init__(self, seed: int) -> None:
        state = (seed ^ GOLDEN_GAMMA) & UINT32_MASK
        # xorshift never leaves the all-zero state.
        self.state = state or GOLDEN_GAMMA

    def next(self) -> float:
        x = self.state
        x ^= (x << 13) & UINT32_MASK
        x ^= x >> 17
        x ^= (x << 5) & UINT32_MASK
        self.state = x
        return (x % 10_000) / 10_000

    def between(self, low: int, high: int) -> int:
        return low + int(self.next() * (high - low + 1))

    def pick(self, values: Sequence[T]) -> T:
        return values[int(self.next() * len(values)) % len(values)]

    def shuffle(self, values: Sequence[T]) -> List[T]:
        shuffled = list(values)
        for i in range(len(shuffled) - 1, 0, -1):
            j = min(int(self.next() * (i + 1)), i)
            shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
        return shuffled

    def take(self, values: Sequence[T], count: int) -> List[T]:
        return self.shuffle(values)[:count]


def fallback_seed(profile: Profile, date_iso: str) -> int:
    sign = zodiac_sign(profile.birthdate)
    return fnv1a32(
        f"{profile.name}-{profile.birthdate}-{sign}-{profile.mood}-{profile.personality}-{date_iso}"
    )


def moon_age_days(moment: datetime) -> float:
    elapsed = (moment - REFERENCE_NEW_MOON).total_seconds() / 86400.0
    return elapsed % SYNODIC_MONTH_DAYS


def moon_phase_name(day: date) -> str:
    noon = datetime.combine(day, time(12), tzinfo=timezone.utc)
    fraction = moon_age_days(noon) / SYNODIC_MONTH_DAYS
    return MOON_PHASES[int(fraction * len(MOON_PHASES) + 0.5) % len(MOON_PHASES)]


def moon_sign(day: date) -> str:
    """Rough lunar sign: the sun's sign advanced by the moon's elongation."""

    sun = zodiac_sign(day.isoformat())
    sun_index = SIGN_NAMES.index(sun)
    noon = datetime.combine(day, time(12), tzinfo=timezone.utc)
    offset = int(moon_age_days(noon) / SYNODIC_MONTH_DAYS * len(SIGN_NAMES) + 0.5)
    return SIGN_NAMES[(sun_index + offset) % len(SIGN_NAMES)]


def next_lunation(after: date, phase_offset: float) -> date:
    """First new (offset 0) or full (offset 0.5) moon on or after ``after``."""

    start = datetime.combine(after, time(0), tzinfo=timezone.utc)
    cycles = (start - REFERENCE_NEW_MOON).total_seconds() / 86400.0 / SYNODIC_MONTH_DAYS
    index = math.ceil(cycles - phase_offset)
    moment = REFERENCE_NEW_MOON + timedelta(days=(index + phase_offset) * SYNODIC_MONTH_DAYS)
    return moment.date()


def short_label(day: date) -> str:
    return f"{MONTH_NAMES[day.month - 1][:3]} {day.day}"


def _days_in_month(day: date) -> int:
    following = date(day.year + (day.month // 12), day.month % 12 + 1, 1)
    return (following - date(day.year, day.month, 1)).days


HEADLINES = (
    "Soft focus, clear intention",
    "The hush before a bright idea",
    "A horizon you can trust",
    "The spark beneath stillness",
    "A graceful return to center",
    "Quiet tides, steady steps",
    "Small light, long reach",
)

OPENINGS = (
    "The day opens with a {mood} current that invites gentler choices.",
    "A {mood} undertone guides your timing and attention.",
    "You move through a {mood} rhythm that rewards patience.",
)

MIDDLES = (
    "As a {sign}, your {personality} nature notices subtle shifts first.",
    "Your {personality} instincts highlight what wants to soften.",
    "The {personality} in you translates intuition into one clear step.",
)

CLOSERS = (
    "Let small rituals ground you, and let clarity arrive in layers.",
    "Pause before replying and your best phrasing will surface.",
    "Choose one gentle action that honors your energy, and let that be enough.",
)

THEMES = ("Clarity", "Patience", "Warmth", "Alignment", "Ease", "Renewal", "Trust")
COLORS = ("Gold", "Moonlit Indigo", "Soft Lavender", "Sea-glass Teal", "Amber Mist", "Starlight Silver")
SYMBOLS = ("★", "☾", "✦", "✧")

DO_DONT = (
    ("Trust your instincts and keep plans simple.", "Overshare or rush to fill quiet moments."),
    ("Follow through on one promise to yourself.", "Say yes before you have checked your energy."),
    ("Ask the question you have been circling.", "Read tone into a short message."),
)

SECTION_BODIES: Dict[str, Tuple[str, ...]] = {
    "Focus": (
        "Pick one clear priority and let the rest soften.",
        "Narrow the list to what truly moves you forward.",
        "Give your best hour to the task you keep postponing.",
    ),
    "Relationships": (
        "Lead with warmth and give others space to respond.",
        "A kind word lands further than a clever one today.",
        "Listen for what is meant, not only what is said.",
    ),
    "Action": (
        "Take one grounded step that supports your long view.",
        "Finish something small and let momentum do the rest.",
        "Move early, then leave room for adjustments.",
    ),
    "Reflection": (
        "Notice what feels steady and keep returning to it.",
        "Ask what today taught you about your own pace.",
        "Let the evening show you what can wait until tomorrow.",
    ),
}

TRANSITS = (
    ("Mercury review cycle", "neutral", "Double-check details before committing."),
    ("Venus harmony", "soft", "Gentle conversations land with ease."),
    ("Mars friction", "intense", "Channel restlessness into movement, not arguments."),
    ("Jupiter lift", "soft", "A generous gesture opens an unexpected door."),
    ("Saturn check-in", "neutral", "Structure feels supportive when you choose it."),
)

AFFECTS_TODAY = (
    "Emotional tides rise and fall; choose calm responses.",
    "Energy gathers slowly, so pace yourself and finish strong.",
    "Sensitivity runs high; protect your quiet time.",
)

TIPS = (
    ("Pause before replying to keep things kind.", "Playful honesty keeps the mood light."),
    ("Name the need underneath the complaint.", "Small, specific praise goes a long way."),
)

JOURNAL_PROMPTS = (
    "What feels most important to protect today?",
    "Where are you ready to ask for more support?",
    "What would make today feel quietly complete?",
)

STARTERS = ("I feel…", "I need…", "I'm avoiding…", "I'm ready to…", "I notice…")

MANTRAS = (
    "I move with grace and clear intention.",
    "I can move gently and still be powerful.",
    "I honor what I feel and choose what I need.",
)

RITUALS = (
    "Light a candle and name one priority out loud.",
    "Write three lines before you open any messages.",
    "Step outside for five slow breaths at sunset.",
)

DECISION_REASONS = (
    "Clarity peaks in the afternoon.",
    "Your focus is sharpest after a calm morning.",
    "Conversations that day confirm your instincts.",
)

WEEK_ARCS = (
    ("Settle into a calm, focused rhythm.", "Tune inward before making changes.", "Conversations flow and ease returns."),
    ("Start slow and gather information.", "Midweek momentum favors decisions.", "Rest restores what the week asked of you."),
)

OPPORTUNITIES = (
    "Strengthen a bond through simple honesty.",
    "Share an idea you have been refining quietly.",
    "Say yes to a small invitation that feels light.",
)

CAUTIONS = (
    "Avoid overcommitting before you feel ready.",
    "Watch for assumptions in fast conversations.",
    "Do not trade rest for other people's urgency.",
)

MONTH_THEMES = (
    "Clarity through gentle structure.",
    "Roots before branches: build what lasts.",
    "A month for honest edits and brave beginnings.",
)

RESET_NOTES = (
    ("Personal reset", "Simplify a lingering task."),
    ("Check-in day", "Review what is working and keep it."),
    ("Open door", "Reach out to someone you miss."),
    ("Slow day", "Protect your energy and say less."),
)

NEW_MOON_INTENTIONS = (
    "Commit to one steady practice.",
    "Plant a small promise and water it daily.",
    "Name the habit you want to grow.",
)

FULL_MOON_RELEASES = (
    "Let go of scattered priorities.",
    "Release the need to explain yourself.",
    "Put down a worry that is not yours to carry.",
)

ONE_THINGS = (
    "If you do one thing, choose the gentlest next step.",
    "If you do one thing, finish what you started first.",
    "If you do one thing, rest before you are tired.",
)

YEAR_HEADLINES = (
    "A year to trust your timing and refine your craft.",
    "A year of steady growth and clearer boundaries.",
    "A year that rewards patience with real momentum.",
)

QUARTER_FOCUS: Dict[str, Tuple[str, ...]] = {
    "Q1": ("Grounded beginnings and clearing space.", "Quiet planning and honest inventory."),
    "Q2": ("Momentum builds through collaboration.", "New ideas find willing partners."),
    "Q3": ("Visibility grows with steady effort.", "Your work speaks louder than promises."),
    "Q4": ("Integration and graceful completion.", "Harvest, gratitude and well-earned rest."),
}

CHALLENGE_GUIDANCE = (
    "Slow down and streamline.",
    "Guard your calendar and say no kindly.",
    "Lean on routines when motivation dips.",
)


def _best_hours(rng: SeededRng) -> List[Dict[str, str]]:
    morning = rng.between(7, 10)
    evening = rng.between(16, 19)
    return [
        {"label": "Morning", "start": f"{morning:02d}:00", "end": f"{morning + 2:02d}:00"},
        {"label": "Evening", "start": f"{evening:02d}:00", "end": f"{evening + 2:02d}:00"},
    ]


def _key_dates(rng: SeededRng, day: date, new_moon: date, full_moon: date) -> List[Dict[str, str]]:
    month_days = _days_in_month(day)
    events: List[Tuple[date, str, str]] = []
    if new_moon.month == day.month:
        events.append((new_moon, "New Moon", "Set intentions around focus."))
    if full_moon.month == day.month:
        events.append((full_moon, "Full Moon", "Release what feels heavy."))
    taken = {event[0] for event in events}
    notes = rng.shuffle(RESET_NOTES)
    for candidate in rng.shuffle(range(1, month_days + 1)):
        if len(events) >= 3:
            break
        chosen = date(day.year, day.month, candidate)
        if chosen in taken:
            continue
        title, note = notes[len(events) % len(notes)]
        events.append((chosen, title, note))
        taken.add(chosen)
    events.sort(key=lambda event: event[0])
    return [{"dateLabel": short_label(when), "title": title, "note": note} for when, title, note in events]


def build_fallback_payload(
    profile: Profile, date_iso: str, generated_at: Optional[datetime] = None
) -> Dict[str, Any]:
    day = parse_iso_date(date_iso) or EPOCH_DATE
    sign = zodiac_sign(profile.birthdate)
    rng = SeededRng(fallback_seed(profile, date_iso))
    mood = profile.mood.lower()
    personality = profile.personality.lower()
    stamp = generated_at or datetime.combine(day, time(0), tzinfo=timezone.utc)

    opening = rng.pick(OPENINGS).format(mood=mood)
    middle = rng.pick(MIDDLES).format(sign=sign, personality=personality)
    subhead = trim_text(" ".join((opening, middle, rng.pick(CLOSERS))))
    do, dont = rng.pick(DO_DONT)
    conflict, affection = rng.pick(TIPS)
    arc_start, arc_midweek, arc_weekend = rng.pick(WEEK_ARCS)

    others = [name for name in SIGN_NAMES if name != sign]
    flow_one, flow_two, gentle = rng.take(others, 3)
    decisions, conversations, rest = rng.take(WEEKDAY_NAMES, 3)
    power_one, power_two, challenge = rng.take(range(12), 3)

    month_start = date(day.year, day.month, 1)
    new_moon = next_lunation(month_start, 0.0)
    full_moon = next_lunation(month_start, 0.5)

    transits = [
        {"title": title, "tone": tone, "meaning": meaning}
        for title, tone, meaning in rng.take(TRANSITS, 2)
    ]

    return {
        "meta": {
            "dateISO": date_iso,
            "localeDateLabel": locale_date_label(date_iso),
            "generatedAtISO": stamp.isoformat(),
            "sign": sign,
            "name": trim_text(profile.name),
        },
        "tabs": {"activeDefault": ACTIVE_TAB_DEFAULT},
        "today": {
            "headline": rng.pick(HEADLINES),
            "subhead": subhead,
            "theme": rng.pick(THEMES),
            "energyScore": rng.between(55, 99),
            "bestHours": _best_hours(rng),
            "ratings": {
                "love": rng.between(3, 5),
                "work": rng.between(3, 5),
                "money": rng.between(2, 4),
                "health": rng.between(3, 5),
            },
            "lucky": {
                "color": rng.pick(COLORS),
                "number": rng.between(1, 99),
                "symbol": rng.pick(SYMBOLS),
            },
            "doDont": {"do": do, "dont": dont},
            "sections": [
                {"title": title, "body": rng.pick(SECTION_BODIES[title])} for title in SECTION_TITLES
            ],
        },
        "cosmicWeather": {
            "moon": {"phase": moon_phase_name(day), "sign": moon_sign(day)},
            "transits": transits,
            "affectsToday": rng.pick(AFFECTS_TODAY),
        },
        "compatibility": {
            "bestFlowWith": [flow_one, flow_two],
            "handleGentlyWith": [gentle],
            "tips": {"conflict": conflict, "affection": affection},
        },
        "journalRitual": {
            "prompt": rng.pick(JOURNAL_PROMPTS),
            "starters": rng.take(STARTERS, 3),
            "mantra": rng.pick(MANTRAS),
            "ritual": rng.pick(RITUALS),
            "bestDayForDecisions": {"dayLabel": decisions, "reason": rng.pick(DECISION_REASONS)},
        },
        "week": {
            "arc": {"start": arc_start, "midweek": arc_midweek, "weekend": arc_weekend},
            "keyOpportunity": rng.pick(OPPORTUNITIES),
            "keyCaution": rng.pick(CAUTIONS),
            "bestDayFor": {"decisions": decisions, "conversations": conversations, "rest": rest},
        },
        "month": {
            "theme": rng.pick(MONTH_THEMES),
            "keyDates": _key_dates(rng, day, new_moon, full_moon),
            "newMoon": {"dateLabel": short_label(new_moon), "intention": rng.pick(NEW_MOON_INTENTIONS)},
            "fullMoon": {"dateLabel": short_label(full_moon), "release": rng.pick(FULL_MOON_RELEASES)},
            "oneThing": rng.pick(ONE_THINGS),
        },
        "year": {
            "headline": rng.pick(YEAR_HEADLINES),
            "quarters": [{"label": label, "focus": rng.pick(QUARTER_FOCUS[label])} for label in QUARTER_LABELS],
            "powerMonths": [MONTH_NAMES[index] for index in sorted((power_one, power_two))],
            "challengeMonth": {"month": MONTH_NAMES[challenge], "guidance": rng.pick(CHALLENGE_GUIDANCE)},
        },
    }


def generate_deterministic(
    profile: Profile, date_iso: str, generated_at: Optional[datetime] = None
) -> str:
    """Serialized fallback dashboard; identical inputs give identical text."""

    payload = build_fallback_payload(profile, date_iso, generated_at)
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
