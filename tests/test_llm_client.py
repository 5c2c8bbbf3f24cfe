import asyncio
from types import SimpleNamespace

import pytest

from api.schemas.dashboard import SamplingParameters
from api.services.dashboard_errors import BackendError
from api.services.llm_client import LocalModelBackend, classify_backend_failure


class FakeCompletions:
    def __init__(self, content="{}", error=None):
        self.content = content
        self.error = error
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def test_sends_sampling_parameters():
    completions = FakeCompletions(content='{"ok": true}')
    backend = LocalModelBackend(client=_client(completions), model="local-test", system_prompt="Strict JSON.")
    sampling = SamplingParameters(seed=42, stop=["\n\n\n"])
    raw = asyncio.run(backend.generate("Fill the template", sampling))

    assert raw == '{"ok": true}'
    request = completions.requests[0]
    assert request["model"] == "local-test"
    assert request["messages"] == [
        {"role": "system", "content": "Strict JSON."},
        {"role": "user", "content": "Fill the template"},
    ]
    assert request["temperature"] == 0.45
    assert request["top_p"] == 0.9
    assert request["max_tokens"] == 1400
    assert request["seed"] == 42
    assert request["stop"] == ["\n\n\n"]
    assert request["extra_body"] == {"top_k": 50, "repetition_penalty": 1.1}


def test_omits_unset_seed_and_stop(monkeypatch):
    monkeypatch.setenv("LLM_MODEL", "from-env")
    completions = FakeCompletions(content=None)
    backend = LocalModelBackend(client=_client(completions))
    assert asyncio.run(backend.generate("p", SamplingParameters())) == ""
    request = completions.requests[0]
    assert "seed" not in request
    assert "stop" not in request
    assert request["model"] == "from-env"
    assert request["messages"] == [{"role": "user", "content": "p"}]


def test_wraps_client_errors():
    completions = FakeCompletions(error=RuntimeError("Connection refused"))
    backend = LocalModelBackend(client=_client(completions))
    with pytest.raises(BackendError, match="unreachable"):
        asyncio.run(backend.generate("p", SamplingParameters()))


def test_classify_backend_failure():
    assert "timed out" in str(classify_backend_failure(TimeoutError()))
    assert "busy" in str(classify_backend_failure(RuntimeError("rate_limit reached")))
    assert str(classify_backend_failure(ValueError("odd"))) == "Local model error: odd"
