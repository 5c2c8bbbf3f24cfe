"""Per-request sampling parameters and their retry escalation."""

from __future__ import annotations

from typing import Any, Iterable, Optional

from ..schemas.dashboard import Profile, SamplingParameters, SessionSnapshot

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193
UINT32_MASK = 0xFFFFFFFF

TRUNCATION_MIN_TOKENS = 3000
TRUNCATION_TOKEN_FLOOR = 3600
TRUNCATION_TOKEN_GROWTH = 1.2
TRUNCATION_TOKENS_PER_ATTEMPT = 200
TRUNCATION_TEMPERATURE_CAP = 0.3
TEMPERATURE_STEP = 0.05
TEMPERATURE_FLOOR = 0.1
SEED_STEP = 1337


def fnv1a32(text: str) -> int:
    """32-bit FNV-1a over the UTF-8 bytes of ``text``."""

    value = FNV_OFFSET_BASIS
    for byte in text.encode("utf-8"):
        value ^= byte
        value = (value * FNV_PRIME) & UINT32_MASK
    return value


def _date_of(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    meta = payload.get("meta")
    if not isinstance(meta, dict):
        return None
    value = meta.get("dateISO")
    return value if isinstance(value, str) else None


def session_salt(session: Optional[SessionSnapshot], date_iso: str) -> int:
    """How many payloads the caller already holds for ``date_iso``."""

    if session is None:
        return 0
    history: Iterable[Any] = session.history or []
    salt = sum(1 for payload in history if _date_of(payload) == date_iso)
    if _date_of(session.current) == date_iso:
        salt += 1
    return salt


def build_sampling_params(
    profile: Profile,
    date_iso: str,
    session: Optional[SessionSnapshot] = None,
    base: Optional[SamplingParameters] = None,
) -> SamplingParameters:
    base = base or SamplingParameters()
    seed = fnv1a32(f"{date_iso}|{profile.name}|{profile.birthdate}")
    seed = (seed + session_salt(session, date_iso)) & UINT32_MASK
    return base.model_copy(update={"seed": seed})


def bump_seed(sampling: SamplingParameters, attempt: int) -> SamplingParameters:
    if sampling.seed is None:
        return sampling.model_copy()
    return sampling.model_copy(update={"seed": (sampling.seed + attempt * SEED_STEP) & UINT32_MASK})


def escalate_for_truncation(sampling: SamplingParameters, attempt: int) -> SamplingParameters:
    """Larger token budget, cooler temperature and a fresh seed after a cut-off answer."""

    max_tokens = max(
        round(max(sampling.max_tokens, TRUNCATION_MIN_TOKENS) * TRUNCATION_TOKEN_GROWTH),
        TRUNCATION_TOKEN_FLOOR,
    )
    max_tokens += attempt * TRUNCATION_TOKENS_PER_ATTEMPT
    temperature = max(
        TEMPERATURE_FLOOR,
        min(sampling.temperature, TRUNCATION_TEMPERATURE_CAP) - TEMPERATURE_STEP,
    )
    escalated = bump_seed(sampling, attempt)
    return escalated.model_copy(update={"max_tokens": max_tokens, "temperature": round(temperature, 4)})
