from api.schemas.dashboard import Profile, SamplingParameters, SessionSnapshot
from api.services.sampling import (
    build_sampling_params,
    bump_seed,
    escalate_for_truncation,
    fnv1a32,
    session_salt,
)

PROFILE = Profile(name="Maya", birthdate="1992-04-03")


def test_fnv1a32_reference_values():
    assert fnv1a32("") == 0x811C9DC5
    assert fnv1a32("a") == 0xE40C292C
    assert fnv1a32("foobar") == 0xBF9CF968


def test_defaults_and_seed_derivation():
    sampling = build_sampling_params(PROFILE, "2025-05-01")
    assert sampling.temperature == 0.45
    assert sampling.top_p == 0.9
    assert sampling.top_k == 50
    assert sampling.repeat_penalty == 1.1
    assert sampling.max_tokens == 1400
    assert sampling.stop == []
    assert sampling.seed == fnv1a32("2025-05-01|Maya|1992-04-03")


def test_session_salt_counts_payloads_for_the_same_date():
    same_day = {"meta": {"dateISO": "2025-05-01"}}
    other_day = {"meta": {"dateISO": "2025-04-30"}}
    session = SessionSnapshot(current=same_day, history=[same_day, other_day, same_day, {"meta": None}])
    assert session_salt(session, "2025-05-01") == 3
    assert session_salt(None, "2025-05-01") == 0

    base = build_sampling_params(PROFILE, "2025-05-01")
    salted = build_sampling_params(PROFILE, "2025-05-01", session)
    assert salted.seed == (base.seed + 3) & 0xFFFFFFFF


def test_truncation_escalation():
    base = SamplingParameters(seed=10)
    first = escalate_for_truncation(base, 1)
    assert first.max_tokens == 3800
    assert first.temperature == 0.25
    assert first.seed == 10 + 1337

    second = escalate_for_truncation(base, 2)
    assert second.max_tokens == 4000
    assert second.seed == 10 + 2 * 1337

    large = escalate_for_truncation(SamplingParameters(max_tokens=5000), 1)
    assert large.max_tokens == 6200
    assert large.seed is None

    assert base.max_tokens == 1400
    assert base.seed == 10


def test_temperature_never_drops_below_floor():
    cool = SamplingParameters(temperature=0.1)
    assert escalate_for_truncation(cool, 1).temperature == 0.1


def test_seed_bump_wraps_to_32_bits():
    sampling = SamplingParameters(seed=0xFFFFFFFF)
    assert bump_seed(sampling, 1).seed == 1336
    assert bump_seed(SamplingParameters(), 1).seed is None
