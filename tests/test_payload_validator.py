import json

from api.schemas.dashboard import DashboardPayload, Profile
from api.services.fallback_generator import generate_deterministic
from api.services.payload_normalizer import normalize
from api.services.payload_validator import format_path, validate


def _payload():
    profile = Profile(name="Maya", birthdate="1992-04-03", mood="Curious", personality="The Seeker")
    return json.loads(generate_deterministic(profile, "2025-05-01"))


def test_accepts_complete_payload():
    outcome = validate(_payload())
    assert outcome.is_valid
    assert isinstance(outcome.payload, DashboardPayload)
    assert outcome.violation is None


def test_rejects_non_object_root():
    outcome = validate([])
    assert not outcome.is_valid
    assert outcome.violation.field_path == "(root)"


def test_first_missing_section_in_schema_order():
    obj = _payload()
    del obj["year"]
    del obj["today"]
    assert validate(obj).violation.field_path == "today"


def test_missing_nested_field_path():
    obj = _payload()
    del obj["today"]["lucky"]["symbol"]
    violation = validate(obj).violation
    assert violation.field_path == "today.lucky.symbol"
    assert violation.reason == "required field is missing"


def test_section_with_wrong_type_counts_as_missing_structure():
    obj = _payload()
    obj["week"] = "soon"
    obj["cosmicWeather"]["transits"][0]["tone"] = "spicy"
    assert validate(obj).violation.field_path == "week"


def test_three_best_hours_rejected_then_normalized():
    obj = _payload()
    obj["today"]["bestHours"].append({"label": "Night", "start": "22:00", "end": "23:00"})
    violation = validate(obj).violation
    assert violation.field_path == "today.bestHours"
    assert "maxItems" in violation.reason

    assert validate(normalize(obj)).is_valid


def test_types_checked_before_cardinality():
    obj = _payload()
    obj["journalRitual"]["starters"] = ["only one", "two"]
    obj["today"]["energyScore"] = "high"
    assert validate(obj).violation.field_path == "today.energyScore"


def test_cardinality_checked_before_enumerations():
    obj = _payload()
    obj["cosmicWeather"]["transits"][0]["tone"] = "spicy"
    obj["compatibility"]["handleGentlyWith"] = []
    assert validate(obj).violation.field_path == "compatibility.handleGentlyWith"


def test_enumerations():
    obj = _payload()
    obj["cosmicWeather"]["transits"][1]["tone"] = "spicy"
    assert validate(obj).violation.field_path == "cosmicWeather.transits[1].tone"

    obj = _payload()
    obj["today"]["sections"][1]["title"] = "Love"
    assert validate(obj).violation.field_path == "today.sections[1].title"

    obj = _payload()
    obj["tabs"]["activeDefault"] = "week"
    assert validate(obj).violation.field_path == "tabs.activeDefault"


def test_text_must_be_single_line_and_short():
    obj = _payload()
    obj["today"]["headline"] = "first\nsecond"
    violation = validate(obj).violation
    assert violation.field_path == "today.headline"
    assert violation.reason == "text must be a single line"

    obj = _payload()
    obj["week"]["keyCaution"] = "x" * 281
    assert validate(obj).violation.field_path == "week.keyCaution"


def test_out_of_range_numbers():
    obj = _payload()
    obj["today"]["ratings"]["money"] = 6
    assert validate(obj).violation.field_path == "today.ratings.money"

    obj = _payload()
    obj["today"]["lucky"]["number"] = 1000
    assert validate(obj).violation.field_path == "today.lucky.number"


def test_unresolved_placeholder_rejected_after_schema_checks():
    obj = _payload()
    obj["month"]["oneThing"] = "__FILL__"
    violation = validate(obj).violation
    assert violation.field_path == "month.oneThing"
    assert violation.reason == "unresolved template placeholder"

    obj["journalRitual"]["starters"] = ["__FILL__", "__FILL__", "__FILL__"]
    assert validate(obj).violation.field_path == "journalRitual.starters[0]"


def test_placeholder_text_in_meta_is_user_data():
    obj = _payload()
    obj["meta"]["name"] = "__FILL__bob"
    outcome = validate(obj)
    assert outcome.is_valid
    assert outcome.payload.meta.name == "__FILL__bob"


def test_extra_keys_are_tolerated_and_dropped():
    obj = _payload()
    obj["debug"] = {"tokens": 12}
    obj["today"]["mood"] = "extra"
    outcome = validate(obj)
    assert outcome.is_valid
    assert "debug" not in outcome.payload.model_dump()


def test_format_path():
    assert format_path(["today", "bestHours", 2]) == "today.bestHours[2]"
    assert format_path(["cosmicWeather", "transits", 0, "tone"]) == "cosmicWeather.transits[0].tone"
    assert format_path([]) == "(root)"
