# tests/test_llm_client_gateways.py
from types import SimpleNamespace

import pytest

from multi_engine_dashboard.config import EngineSettings, load_provider_settings
from multi_engine_dashboard.errors import ConfigurationError, ProviderError, ValidationError
from multi_engine_dashboard.llm_client import (
    AnthropicGateway,
    GoogleGateway,
    OpenAIGateway,
    build_gateways,
    validate_request,
)


# --- fake SDK clients ---


class _FakeOpenAIResponse:
    def __init__(self, text, usage=None, model="gpt-test"):
        self.output_text = text
        self._usage = usage

        self._model = model

    def to_dict(self):
        return {"model": self._model, "usage": self._usage}


class _FakeOpenAIClient:
    def __init__(self, response=None, exc=None):
        self.calls = []
        self._response = response
        self._exc = exc
        self.responses = SimpleNamespace(create=self._create)

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self._exc is not None:
            raise self._exc
        return self._response


class _FakeAnthropicClient:
    def __init__(self, response):
        self.calls = []
        self._response = response
        self.messages = SimpleNamespace(create=self._create)

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        return self._response


class _FakeGoogleClient:
    def __init__(self, response):
        self.calls = []
        self._response = response
        self.models = SimpleNamespace(generate_content=self._generate)

    def _generate(self, **kwargs):
        self.calls.append(kwargs)
        return self._response


def _settings(name="OpenAI", model="test-model", api_key="sk-test"):
    return EngineSettings(name=name, model=model, api_key=api_key)


# --- validation ---


@pytest.mark.parametrize(
    "prompt, step_id",
    [
        ("", 1),
        (None, 1),
        (123, 1),
        ("hello", None),
        ("hello", 0),
        ("hello", -3),
        ("hello", "1"),
        ("hello", True),
        ("hello", 2**63),
    ],
)
def test_validate_request_rejects_bad_input(prompt, step_id):
    with pytest.raises(ValidationError) as excinfo:
        validate_request(prompt, step_id)
    assert excinfo.value.status_code == 400


def test_validation_happens_before_the_client_is_touched():
    client = _FakeOpenAIClient(response=_FakeOpenAIResponse("unused"))
    gateway = OpenAIGateway(_settings(), client=client)

    with pytest.raises(ValidationError):
        gateway.generate("", 1)
    assert client.calls == []


def test_missing_credential_raises_configuration_error_without_calling():
    client = _FakeOpenAIClient(response=_FakeOpenAIResponse("unused"))
    gateway = OpenAIGateway(_settings(api_key=None), client=client)

    with pytest.raises(ConfigurationError) as excinfo:
        gateway.generate("hello", 1)

    assert excinfo.value.engine == "OpenAI"
    assert "OPENAI_API_KEY" in excinfo.value.message
    assert excinfo.value.status_code == 500
    assert client.calls == []


# --- per-provider normalization ---


def test_openai_gateway_normalizes_response_and_usage():
    client = _FakeOpenAIClient(
        response=_FakeOpenAIResponse(
            "Hi there", usage={"input_tokens": 3, "output_tokens": 5}, model="gpt-4.1-mini-2025"
        )
    )
    gateway = OpenAIGateway(_settings(model="gpt-4.1-mini"), client=client, max_output_tokens=77)

    res = gateway.generate("Hello", 1)

    assert res.text == "Hi there"
    assert res.model == "gpt-4.1-mini-2025"
    assert res.input_tokens == 3
    assert res.output_tokens == 5
    assert res.latency is not None and res.latency >= 0
    assert res.raw["usage"] == {"input_tokens": 3, "output_tokens": 5}

    assert client.calls == [
        {"model": "gpt-4.1-mini", "input": "Hello", "max_output_tokens": 77}
    ]


def test_openai_gateway_reads_output_blocks_when_output_text_missing():
    response = SimpleNamespace(
        output_text=None,
        output=[
            {"type": "message", "content": [
                {"type": "output_text", "text": "part one, "},
                {"type": "refusal", "text": "ignored"},
            ]},
            SimpleNamespace(content=[SimpleNamespace(type="output_text", text="part two")]),
        ],
    )
    gateway = OpenAIGateway(_settings(), client=_FakeOpenAIClient(response=response))

    res = gateway.generate("Hello", 1)

    assert res.text == "part one, part two"
    # No usage available on this response shape
    assert res.input_tokens is None
    assert res.output_tokens is None
    assert res.model == "test-model"


def test_empty_provider_text_becomes_placeholder():
    gateway = OpenAIGateway(_settings(), client=_FakeOpenAIClient(response=_FakeOpenAIResponse("")))
    assert gateway.generate("Hello", 1).text == "No response generated"


def test_anthropic_gateway_joins_text_blocks():
    response = SimpleNamespace(
        content=[
            SimpleNamespace(type="text", text="Hello "),
            SimpleNamespace(type="tool_use", name="ignored"),
            SimpleNamespace(type="text", text="world"),
        ],
        usage=SimpleNamespace(input_tokens=2, output_tokens=4),
        model="claude-test",
        model_dump=lambda **kwargs: {"model": "claude-test"},
    )
    client = _FakeAnthropicClient(response)
    gateway = AnthropicGateway(
        _settings(name="Anthropic", model="claude-sonnet-4-5"),
        client=client,
        max_output_tokens=50,
    )

    res = gateway.generate("Say hello", 7)

    assert res.text == "Hello world"
    assert res.model == "claude-test"
    assert (res.input_tokens, res.output_tokens) == (2, 4)
    assert res.raw == {"model": "claude-test"}
    assert client.calls == [
        {
            "model": "claude-sonnet-4-5",
            "max_tokens": 50,
            "messages": [{"role": "user", "content": "Say hello"}],
        }
    ]


def test_google_gateway_reads_usage_metadata():
    response = SimpleNamespace(
        text="Bonjour",
        usage_metadata=SimpleNamespace(prompt_token_count=6, candidates_token_count=9),
        model_version="gemini-test-001",
    )
    client = _FakeGoogleClient(response)
    gateway = GoogleGateway(
        _settings(name="Google", model="gemini-2.5-flash"),
        client=client,
        max_output_tokens=64,
    )

    res = gateway.generate("Say hello in French", 2)

    assert res.text == "Bonjour"
    assert res.model == "gemini-test-001"
    assert (res.input_tokens, res.output_tokens) == (6, 9)
    assert "repr" in res.raw

    (call,) = client.calls
    assert call["model"] == "gemini-2.5-flash"
    assert call["contents"] == "Say hello in French"
    assert call["config"].max_output_tokens == 64


# --- provider failures ---


def test_sdk_exception_is_wrapped_in_provider_error():
    boom = RuntimeError("rate limited")
    gateway = OpenAIGateway(_settings(), client=_FakeOpenAIClient(exc=boom))

    with pytest.raises(ProviderError) as excinfo:
        gateway.generate("Hello", 1)

    assert excinfo.value.engine == "OpenAI"
    assert excinfo.value.message == "rate limited"
    assert excinfo.value.__cause__ is boom


def test_sdk_exception_without_message_gets_generic_text():
    gateway = OpenAIGateway(_settings(), client=_FakeOpenAIClient(exc=TimeoutError()))

    with pytest.raises(ProviderError) as excinfo:
        gateway.generate("Hello", 1)

    assert excinfo.value.message == "Failed to generate response from OpenAI"


# --- settings / factory ---


def test_load_provider_settings_from_mapping():
    settings = load_provider_settings(
        {"OPENAI_API_KEY": "sk-1", "GOOGLE_API_KEY": "g-1", "GOOGLE_MODEL": "gemini-custom"}
    )

    assert settings.missing_credentials() == ["Anthropic"]
    assert settings.get("OpenAI").model == "gpt-4.1-mini"
    assert settings.get("Google").model == "gemini-custom"
    assert settings.get("Anthropic").configured is False


def test_build_gateways_in_engine_order_with_prebuilt_clients():
    settings = load_provider_settings({"OPENAI_API_KEY": "sk-1"})
    fake = _FakeOpenAIClient(response=_FakeOpenAIResponse("ok"))

    gateways = build_gateways(settings, clients={"OpenAI": fake}, timeout=5)

    assert list(gateways) == ["OpenAI", "Anthropic", "Google"]
    assert isinstance(gateways["OpenAI"], OpenAIGateway)
    assert isinstance(gateways["Anthropic"], AnthropicGateway)
    assert isinstance(gateways["Google"], GoogleGateway)

    assert gateways["OpenAI"].generate("Hello", 1).text == "ok"
    with pytest.raises(ConfigurationError):
        gateways["Anthropic"].generate("Hello", 1)
