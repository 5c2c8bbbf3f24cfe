import json

from api.services.dashboard_prompt import (
    PromptContext,
    build_dashboard_prompt,
    build_regenerate_prompt,
    build_repair_prompt,
    build_template,
)
from api.services.payload_normalizer import normalize
from api.services.payload_validator import validate

CONTEXT = PromptContext(
    name="Maya",
    birthdate="1992-04-03",
    sign="Aries",
    date_iso="2025-05-01",
    locale_date_label="Thursday, May 1",
    generated_at_iso="2025-05-01T07:00:00+00:00",
    mood="Curious",
    personality="The Seeker",
)


def test_template_prefills_meta_and_fixed_labels():
    template = json.loads(build_template(CONTEXT))
    assert template["meta"] == {
        "dateISO": "2025-05-01",
        "localeDateLabel": "Thursday, May 1",
        "generatedAtISO": "2025-05-01T07:00:00+00:00",
        "sign": "Aries",
        "name": "Maya",
    }
    assert template["tabs"] == {"activeDefault": "today"}
    assert [s["title"] for s in template["today"]["sections"]] == ["Focus", "Relationships", "Action", "Reflection"]
    assert [q["label"] for q in template["year"]["quarters"]] == ["Q1", "Q2", "Q3", "Q4"]
    assert template["today"]["energyScore"] == "__FILL_INT_0_100__"
    assert template["today"]["ratings"]["love"] == "__FILL_INT_0_5__"
    assert template["today"]["lucky"]["number"] == "__FILL_INT__"
    assert template["today"]["bestHours"][0]["start"] == "__FILL_HHMM__"


def test_template_is_compact():
    assert ", " not in build_template(CONTEXT).replace("Thursday, May 1", "")
    assert "\n" not in build_template(CONTEXT)


def test_unfilled_template_never_validates():
    assert not validate(normalize(json.loads(build_template(CONTEXT)))).is_valid


def test_dashboard_prompt_carries_context_and_template():
    template_json = build_template(CONTEXT)
    prompt = build_dashboard_prompt(CONTEXT, template_json)
    assert "name=Maya" in prompt
    assert "sunSign=Aries" in prompt
    assert "localeDateLabel=Thursday, May 1" in prompt
    assert "personality=The Seeker" in prompt
    assert "TEMPLATE_JSON:\n" + template_json in prompt
    assert "Focus, Relationships, Action, Reflection" in prompt
    assert prompt.rstrip().endswith("Now output the completed JSON only.")
    assert build_dashboard_prompt(CONTEXT) == prompt


def test_regenerate_prompt_asks_to_start_over():
    template_json = build_template(CONTEXT)
    prompt = build_regenerate_prompt(CONTEXT, template_json)
    assert "cut off or invalid" in prompt
    assert template_json in prompt


def test_repair_prompt_includes_raw_output_verbatim():
    broken = '{"today": {headline: "Hi {{ name }}", }'
    prompt = build_repair_prompt(CONTEXT, build_template(CONTEXT), broken)
    assert "careful JSON formatter" in prompt
    assert "MODEL_OUTPUT:\n" + broken in prompt
    assert "localeDateLabel=" not in prompt
