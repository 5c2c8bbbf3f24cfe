import asyncio
import json
from datetime import datetime, timezone

import pytest

from api.schemas.dashboard import Profile
from api.services.dashboard_errors import (
    BackendError,
    DashboardGenerationError,
    FallbackExhausted,
    GenerationTimeoutError,
)
from api.services.dashboard_orchestrator import (
    DashboardOrchestrator,
    FailureClassification,
    GenerationState,
    TRANSITIONS,
    decide_next_state,
    evaluate_candidate,
)
from api.services.fallback_generator import generate_deterministic
from api.services.sampling import build_sampling_params

PROFILE = Profile(name="Maya", birthdate="1992-04-03", mood="Curious", personality="The Seeker")
DATE = "2025-05-01"
NOW = datetime(2025, 5, 1, 7, 0, tzinfo=timezone.utc)


def _clock():
    return NOW


def _model_output():
    payload = json.loads(generate_deterministic(PROFILE, DATE, NOW))
    payload["today"]["headline"] = "From the model"
    return json.dumps(payload)


class ScriptedBackend:
    def __init__(self, outputs, delay=0.0):
        self.outputs = list(outputs)
        self.delay = delay
        self.prompts = []
        self.samplings = []
        self.finished = 0

    async def generate(self, prompt, sampling):
        self.prompts.append(prompt)
        self.samplings.append(sampling)
        output = self.outputs.pop(0) if len(self.outputs) > 1 else self.outputs[0]
        if self.delay:
            await asyncio.sleep(self.delay)
        self.finished += 1
        if isinstance(output, Exception):
            raise output
        return output


def _orchestrator(backend, **kwargs):
    kwargs.setdefault("timeout_seconds", 5)
    return DashboardOrchestrator(backend, clock=_clock, **kwargs)


def test_accepts_first_valid_answer():
    backend = ScriptedBackend([_model_output()])
    payload = asyncio.run(_orchestrator(backend).run(PROFILE, DATE))
    assert payload.today.headline == "From the model"
    assert len(backend.prompts) == 1
    assert backend.samplings[0].seed == build_sampling_params(PROFILE, DATE).seed


def test_garbage_backend_falls_back_after_budget():
    backend = ScriptedBackend(["I am not JSON at all."])
    payload = asyncio.run(_orchestrator(backend, max_calls=3).run(PROFILE, DATE))
    assert len(backend.prompts) == 3
    assert payload.model_dump() == json.loads(generate_deterministic(PROFILE, DATE, NOW))
    assert all("cut off or invalid" in prompt for prompt in backend.prompts[1:])
    seeds = [sampling.seed for sampling in backend.samplings]
    assert len(set(seeds)) == 3


def test_budget_is_configurable():
    backend = ScriptedBackend(["nope"])
    asyncio.run(_orchestrator(backend, max_calls=1).run(PROFILE, DATE))
    assert len(backend.prompts) == 1

    with pytest.raises(ValueError):
        DashboardOrchestrator(backend, max_calls=0)


def test_syntax_error_triggers_repair_with_previous_output():
    broken = '{"today" "oops"}'
    backend = ScriptedBackend([broken, _model_output()])
    payload = asyncio.run(_orchestrator(backend).run(PROFILE, DATE))
    assert payload.today.headline == "From the model"
    assert "careful JSON formatter" in backend.prompts[1]
    assert "MODEL_OUTPUT:\n" + broken in backend.prompts[1]
    assert backend.samplings[1] == backend.samplings[0]


def test_truncation_escalates_sampling():
    full = _model_output()
    truncated = full[: full.index('"compatibility"')]
    backend = ScriptedBackend([truncated, full])
    asyncio.run(_orchestrator(backend).run(PROFILE, DATE))
    first, second = backend.samplings
    assert second.max_tokens == 3800 > first.max_tokens
    assert second.temperature < first.temperature
    assert second.seed == (first.seed + 1337) & 0xFFFFFFFF
    assert "cut off or invalid" in backend.prompts[1]


def test_backend_errors_propagate_without_fallback():
    backend = ScriptedBackend([BackendError("server down")])
    with pytest.raises(BackendError, match="server down"):
        asyncio.run(_orchestrator(backend).run(PROFILE, DATE))
    assert len(backend.prompts) == 1

    backend = ScriptedBackend([RuntimeError("Connection refused")])
    with pytest.raises(BackendError, match="unreachable"):
        asyncio.run(_orchestrator(backend).run(PROFILE, DATE))


def test_timeout_stops_waiting_but_does_not_cancel_the_call():
    backend = ScriptedBackend([_model_output()], delay=0.1)
    orchestrator = _orchestrator(backend, timeout_seconds=0.02)

    async def scenario():
        with pytest.raises(GenerationTimeoutError):
            await orchestrator.run(PROFILE, DATE)
        assert backend.finished == 0
        await asyncio.sleep(0.2)
        return backend.finished

    assert asyncio.run(scenario()) == 1


def test_rejected_fallback_raises_fallback_exhausted():
    class BrokenSource:
        async def produce(self, context):
            return "{}"

    orchestrator = _orchestrator(ScriptedBackend(["garbage"]), max_calls=1)
    orchestrator.fallback_source = BrokenSource()
    with pytest.raises(FallbackExhausted) as excinfo:
        asyncio.run(orchestrator.run(PROFILE, DATE))
    assert excinfo.value.field_path == "meta"


def test_evaluate_candidate_classifications():
    assert evaluate_candidate("plain words").classification is FailureClassification.OTHER
    assert evaluate_candidate('{"today" "oops"}').classification is FailureClassification.SYNTAX_LIKE
    assert evaluate_candidate('{"a":"unterminated').classification is FailureClassification.TRUNCATION
    assert evaluate_candidate('{"meta":{"name":').classification is FailureClassification.TRUNCATION

    cut = evaluate_candidate('{"a":1')
    assert cut.classification is FailureClassification.TRUNCATION
    assert cut.field_path == "meta"

    incomplete = evaluate_candidate('{"a":1}')
    assert incomplete.classification is FailureClassification.OTHER
    assert incomplete.field_path == "meta"

    accepted = evaluate_candidate("```json\n" + _model_output() + "\n```")
    assert accepted.accepted
    assert accepted.classification is None


def test_decoder_limits_are_classified_as_other():
    huge_number = evaluate_candidate('{"a": ' + "9" * 5000 + "}")
    assert huge_number.classification is FailureClassification.OTHER
    assert huge_number.reason.startswith("ValueError")

    deep = evaluate_candidate('{"a": ' + "[" * 50000)
    assert deep.classification is FailureClassification.OTHER
    assert deep.reason.startswith("RecursionError")


@pytest.mark.parametrize(
    "output",
    ['{"a": ' + "9" * 5000 + "}", '{"a": ' + "[" * 50000],
    ids=["digit_limit", "deep_nesting"],
)
def test_undecodable_output_still_reaches_fallback(output):
    backend = ScriptedBackend([output])
    payload = asyncio.run(_orchestrator(backend, max_calls=2).run(PROFILE, DATE))
    assert len(backend.prompts) == 2
    assert payload.model_dump() == json.loads(generate_deterministic(PROFILE, DATE, NOW))


def test_sentinel_like_name_still_gets_the_fallback():
    profile = PROFILE.model_copy(update={"name": "__FILL__bob"})
    backend = ScriptedBackend(["garbage"])
    payload = asyncio.run(_orchestrator(backend, max_calls=1).run(profile, DATE))
    assert payload.meta.name == "__FILL__bob"


def test_decide_next_state():
    assert decide_next_state(None, 1, 3) is GenerationState.ACCEPT
    assert decide_next_state(FailureClassification.SYNTAX_LIKE, 1, 3) is GenerationState.REPAIR
    assert decide_next_state(FailureClassification.TRUNCATION, 1, 3) is GenerationState.REGENERATE
    assert decide_next_state(FailureClassification.OTHER, 2, 3) is GenerationState.REGENERATE
    assert decide_next_state(FailureClassification.SYNTAX_LIKE, 3, 3) is GenerationState.FALLBACK
    assert decide_next_state(None, 3, 3) is GenerationState.ACCEPT


def test_transition_table_is_enforced():
    assert TRANSITIONS[GenerationState.FALLBACK] == frozenset({GenerationState.ACCEPT})
    with pytest.raises(DashboardGenerationError):
        DashboardOrchestrator._transition(GenerationState.INVOKE, GenerationState.ACCEPT)
    assert (
        DashboardOrchestrator._transition(GenerationState.REPAIR, GenerationState.BUILD_PROMPT)
        is GenerationState.BUILD_PROMPT
    )
