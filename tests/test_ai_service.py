import pytest

from wurdump.core.errors import AIServiceError, AIServiceUnavailableError, RequestCancelledError
from wurdump.services import AIService, AIConfig
from wurdump.services.ai.ai_service import CancellationRegistry, build_prompts
from wurdump.utils import ConfigManager


def completion(text):
    return {"choices": [{"message": {"content": text}}]}


class FakeTransport:
    """Replays scripted responses; exceptions in the script are raised"""

    def __init__(self, *responses, default=None):
        self.responses = list(responses)
        self.default = default if default is not None else completion("done")
        self.calls = []

    def __call__(self, url, payload, timeout):
        self.calls.append((url, payload, timeout))
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def config():
    return AIConfig(max_retries=2, backoff=0)


class TestPrompts:
    def test_text_prompts(self):
        titles = [p.title for p in build_prompts("hello world", "text")]
        assert titles == ["Professional Tone", "Summarize", "Explain Content"]

    def test_code_prompts(self):
        titles = [p.title for p in build_prompts("def foo():\n    return 1", "code")]
        assert titles == ["Convert to TypeScript", "Clean & Format", "Explain Content"]

    def test_json_prompts(self):
        titles = [p.title for p in build_prompts('{"a": 1}', "json")]
        assert "Convert to CSV" in titles
        assert titles[-1] == "Explain Content"

    def test_instructions_replace_builtin_prompts(self):
        prompts = build_prompts("hello world", "text", instructions="translate to French")
        assert len(prompts) == 1
        assert prompts[0].title == "AI Enhancement"
        assert "translate to French" in prompts[0].user_prompt

    def test_blank_instructions_are_ignored(self):
        assert len(build_prompts("hello world", "text", instructions="  ")) == 3

    def test_context_is_appended(self):
        prompts = build_prompts("hello world", "text", context=["audience: managers", " "])
        for prompt in prompts:
            assert prompt.user_prompt.endswith("Additional context:\n- audience: managers")


class TestTransform:
    def test_returns_one_transformation_per_prompt(self, config):
        transport = FakeTransport(completion("a"), completion("b"), completion("c"))
        service = AIService(config, transport)

        results = service.transform("hello world", "text")

        assert [r.result for r in results] == ["a", "b", "c"]
        assert [r.title for r in results] == ["Professional Tone", "Summarize", "Explain Content"]
        assert results[0].confidence == 0.9
        assert not any(r.is_applied for r in results)

    def test_request_payload(self, config):
        transport = FakeTransport()
        AIService(config, transport).transform("hello world", instructions="shorter")

        url, payload, timeout = transport.calls[0]
        assert url == "http://localhost:11434/v1/chat/completions"
        assert payload["model"] == "gpt-oss:20b"
        assert payload["stream"] is False
        assert [m["role"] for m in payload["messages"]] == ["system", "user"]
        assert timeout == config.timeout

    def test_transient_errors_are_retried(self, config):
        transport = FakeTransport(
            AIServiceUnavailableError("HTTP 503"),
            AIServiceUnavailableError("HTTP 503"),
            completion("recovered")
        )
        results = AIService(config, transport).transform("x", instructions="fix")

        assert len(transport.calls) == 3
        assert results[0].result == "recovered"

    def test_fallback_when_backend_is_down(self, config):
        transport = FakeTransport(*[AIServiceUnavailableError("Cannot connect")] * 9)
        results = AIService(config, transport).transform("hello world", "text")

        # Three prompts, each tried max_retries + 1 times
        assert len(transport.calls) == 9
        assert len(results) == 1
        assert results[0].title == "AI Unavailable"
        assert results[0].transformation_type == "error"
        assert results[0].confidence == 0.1

    def test_permanent_errors_are_not_retried(self, config):
        transport = FakeTransport(AIServiceError("HTTP 400"), completion("ok"))
        results = AIService(config, transport).transform("hello world", "text")

        assert len(transport.calls) == 3
        assert [r.title for r in results] == ["Summarize", "Explain Content"]

    def test_malformed_response_is_skipped(self, config):
        transport = FakeTransport({"unexpected": True})
        results = AIService(config, transport).transform("x", instructions="fix")
        assert results[0].title == "AI Unavailable"

    def test_to_dict(self, config):
        result = AIService(config, FakeTransport()).transform("x", instructions="fix")[0]
        data = result.to_dict()
        assert data["title"] == "AI Enhancement"
        assert data["transformation_type"] == "enhancement"


class TestCancellation:
    def test_cancel_in_flight_request(self, config):
        service = AIService(config)

        def transport(url, payload, timeout):
            service.cancel("item-1")
            return completion("too late")

        service.transport = transport
        with pytest.raises(RequestCancelledError):
            service.transform("hello world", "text", request_id="item-1")
        assert service.cancellations.active() == []

    def test_cancel_unknown_request(self, config):
        assert AIService(config, FakeTransport()).cancel("nothing") is False

    def test_newer_request_supersedes_older(self):
        registry = CancellationRegistry()
        first = registry.register("item-1")
        second = registry.register("item-1")

        assert first.is_set()
        assert not second.is_set()

        # The superseded request must not drop the newer signal
        registry.release("item-1", first)
        assert registry.active() == ["item-1"]
        registry.release("item-1", second)
        assert registry.active() == []

    def test_registry_is_released_after_transform(self, config):
        service = AIService(config, FakeTransport())
        service.transform("x", request_id="item-1")
        assert service.cancellations.active() == []


class TestStatus:
    def test_available_with_model(self, config):
        transport = FakeTransport({"models": [{"name": "gpt-oss:20b"}]})
        status = AIService(config, transport).check_status()

        assert status == {"available": True, "model": True, "error": None}
        assert transport.calls[0][0] == "http://localhost:11434/api/tags"
        assert transport.calls[0][1] is None

    def test_model_missing(self, config):
        status = AIService(config, FakeTransport({"models": []})).check_status()
        assert status["available"] is True
        assert status["model"] is False
        assert "ollama pull" in status["error"]

    def test_backend_down(self, config):
        transport = FakeTransport(AIServiceUnavailableError("Cannot connect"))
        status = AIService(config, transport).check_status()
        assert status["available"] is False


class TestConfig:
    def test_from_config(self, tmp_path):
        manager = ConfigManager(str(tmp_path / "settings.yaml"))
        manager.set('ai.model', 'llama3')
        manager.set('ai.max_retries', 5)

        config = AIConfig.from_config(manager)
        assert config.model == 'llama3'
        assert config.max_retries == 5
        assert config.base_url == "http://localhost:11434/v1"
