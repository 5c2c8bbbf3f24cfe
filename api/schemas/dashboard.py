from __future__ import annotations

from datetime import date as date_type
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, conint, conlist, field_validator

from ..services.constants import MOODS, PERSONALITIES


class Profile(BaseModel):
    name: str
    birthdate: str
    mood: str = MOODS[0]
    personality: str = PERSONALITIES[0]


class SamplingParameters(BaseModel):
    temperature: float = 0.45
    top_p: float = 0.9
    top_k: int = 50
    repeat_penalty: float = 1.1
    # Kept short on the first pass; truncation escalates it on retry.
    max_tokens: int = 1400
    seed: Optional[int] = None
    stop: List[str] = Field(default_factory=list)


class SessionSnapshot(BaseModel):
    """Payloads the caller already holds; only ``meta.dateISO`` is read."""

    current: Optional[Dict[str, Any]] = None
    history: List[Dict[str, Any]] = Field(default_factory=list)


class DashboardMeta(BaseModel):
    dateISO: str
    localeDateLabel: str
    generatedAtISO: str
    sign: str
    name: str


class DashboardTabs(BaseModel):
    activeDefault: Literal["today"]


class BestHour(BaseModel):
    label: str
    start: str
    end: str


class Ratings(BaseModel):
    love: conint(ge=0, le=5)
    work: conint(ge=0, le=5)
    money: conint(ge=0, le=5)
    health: conint(ge=0, le=5)


class Lucky(BaseModel):
    color: str
    number: conint(ge=0, le=999)
    symbol: str


class DoDont(BaseModel):
    do: str
    dont: str


class TodaySection(BaseModel):
    title: Literal["Focus", "Relationships", "Action", "Reflection"]
    body: str


class Today(BaseModel):
    headline: str
    subhead: str
    theme: str
    energyScore: conint(ge=0, le=100)
    bestHours: conlist(BestHour, min_length=2, max_length=2)
    ratings: Ratings
    lucky: Lucky
    doDont: DoDont
    sections: conlist(TodaySection, min_length=4, max_length=4)


class Moon(BaseModel):
    phase: str
    sign: str


class Transit(BaseModel):
    title: str
    tone: Literal["soft", "neutral", "intense"]
    meaning: str


class CosmicWeather(BaseModel):
    moon: Moon
    transits: conlist(Transit, min_length=0, max_length=2) = Field(default_factory=list)
    affectsToday: str


class CompatibilityTips(BaseModel):
    conflict: str
    affection: str


class Compatibility(BaseModel):
    bestFlowWith: conlist(str, min_length=2, max_length=2)
    handleGentlyWith: conlist(str, min_length=1, max_length=1)
    tips: CompatibilityTips


class BestDayForDecisions(BaseModel):
    dayLabel: str
    reason: str


class JournalRitual(BaseModel):
    prompt: str
    starters: conlist(str, min_length=3, max_length=3)
    mantra: str
    ritual: str
    bestDayForDecisions: BestDayForDecisions


class WeekArc(BaseModel):
    start: str
    midweek: str
    weekend: str


class WeekBestDayFor(BaseModel):
    decisions: str
    conversations: str
    rest: str


class Week(BaseModel):
    arc: WeekArc
    keyOpportunity: str
    keyCaution: str
    bestDayFor: WeekBestDayFor


class KeyDate(BaseModel):
    dateLabel: str
    title: str
    note: str


class NewMoon(BaseModel):
    dateLabel: str
    intention: str


class FullMoon(BaseModel):
    dateLabel: str
    release: str


class Month(BaseModel):
    theme: str
    keyDates: conlist(KeyDate, min_length=3, max_length=3)
    newMoon: NewMoon
    fullMoon: FullMoon
    oneThing: str


class Quarter(BaseModel):
    label: Literal["Q1", "Q2", "Q3", "Q4"]
    focus: str


class ChallengeMonth(BaseModel):
    month: str
    guidance: str


class Year(BaseModel):
    headline: str
    quarters: conlist(Quarter, min_length=4, max_length=4)
    powerMonths: conlist(str, min_length=2, max_length=2)
    challengeMonth: ChallengeMonth


class DashboardPayload(BaseModel):
    """Schema-exact daily dashboard; renderers index its arrays positionally."""

    model_config = ConfigDict(extra="ignore")

    meta: DashboardMeta
    tabs: DashboardTabs
    today: Today
    cosmicWeather: CosmicWeather
    compatibility: Compatibility
    journalRitual: JournalRitual
    week: Week
    month: Month
    year: Year


class DashboardRequest(BaseModel):
    profile: Profile
    date: str
    session: Optional[SessionSnapshot] = None

    @field_validator("date")
    @classmethod
    def _iso_date(cls, value: str) -> str:
        value = value.strip()
        try:
            date_type.fromisoformat(value)
        except ValueError as exc:
            raise ValueError("date must be YYYY-MM-DD") from exc
        return value
