"""
Unit tests for LLMService.

Tests provider routing through call(), retry logic, error wrapping and JSON
parsing. OpenAI, Anthropic and Gemini clients are mocked.
"""

import pytest
from unittest.mock import Mock, patch

from shared.services.llm_service import LLMService, LLMServiceError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_responses_result(output_text='{"key": "value"}', reasoning=None):
    """Create a mock result for client.responses.create."""
    result = Mock()
    result.output_text = output_text
    result.reasoning = reasoning
    return result


def _make_chat_response(content='{"result": "ok"}'):
    """Create a mock response for client.chat.completions.create."""
    response = Mock()
    response.choices = [Mock(message=Mock(content=content))]
    return response


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

class TestLLMServiceInit:
    @patch("shared.services.llm_service.OpenAI")
    def test_init_with_only_api_key(self, mock_openai_cls):
        service = LLMService(api_key="fake-key", provider="openai", model_id="gpt-5.2")

        mock_openai_cls.assert_called_once_with(api_key="fake-key")
        assert service.gemini_client is None
        assert service.anthropic_adapter is None
        assert service.max_retries == 3
        assert service.initial_retry_delay == 1.0
        assert service.timeout == 60

    @patch("shared.services.llm_service.OpenAI")
    def test_no_openai_client_without_key(self, mock_openai_cls):
        service = LLMService(api_key="", provider="anthropic", model_id="claude-sonnet-4-5")

        mock_openai_cls.assert_not_called()
        assert service.client is None

    @patch("shared.services.llm_service.genai")
    @patch("shared.services.llm_service.OpenAI")
    def test_init_with_gemini_key(self, mock_openai_cls, mock_genai):
        LLMService(api_key="fake-key", provider="google", model_id="gemini-3-pro-preview",
                   gemini_api_key="gemini-key")

        mock_genai.Client.assert_called_once_with(api_key="gemini-key")

    @patch("shared.services.llm_service.AnthropicAdapter")
    def test_init_with_anthropic_key(self, mock_adapter_cls):
        service = LLMService(api_key="", provider="anthropic", model_id="claude-sonnet-4-5",
                             anthropic_api_key="ant-key", timeout=90)

        mock_adapter_cls.assert_called_once_with(api_key="ant-key", timeout=90, model="claude-sonnet-4-5")
        assert service.anthropic_adapter is mock_adapter_cls.return_value


# ---------------------------------------------------------------------------
# call(): OpenAI Responses API
# ---------------------------------------------------------------------------

class TestCallResponsesApi:
    @patch("shared.services.llm_service.OpenAI")
    def test_happy_path(self, mock_openai_cls):
        mock_client = mock_openai_cls.return_value
        mock_client.responses.create.return_value = _make_responses_result('{"answer": "42"}')

        service = LLMService(api_key="fake-key", provider="openai", model_id="gpt-5.2")
        result = service.call("What is six times seven?")

        assert result["output_text"] == '{"answer": "42"}'
        kwargs = mock_client.responses.create.call_args.kwargs
        assert kwargs["model"] == "gpt-5.2"
        assert kwargs["text"] == {"format": {"type": "json_object"}}

    @patch("shared.services.llm_service.OpenAI")
    def test_system_prompt_and_max_tokens(self, mock_openai_cls):
        mock_client = mock_openai_cls.return_value
        mock_client.responses.create.return_value = _make_responses_result("plain")

        service = LLMService(api_key="fake-key", provider="openai", model_id="gpt-5.1")
        service.call("prompt", system_prompt="system", json_mode=False, max_tokens=4000)

        kwargs = mock_client.responses.create.call_args.kwargs
        assert kwargs["instructions"] == "system"
        assert kwargs["max_output_tokens"] == 4000
        assert "text" not in kwargs

    @patch("shared.services.llm_service.OpenAI")
    def test_json_schema_uses_strict_format(self, mock_openai_cls):
        mock_client = mock_openai_cls.return_value
        mock_client.responses.create.return_value = _make_responses_result('{"field": "val"}')

        service = LLMService(api_key="fake-key", provider="openai", model_id="gpt-5.2")
        schema = {"type": "object", "properties": {"field": {"type": "string"}}}
        service.call("test", json_schema=schema, schema_name="TestSchema")

        text_format = mock_client.responses.create.call_args.kwargs["text"]["format"]
        assert text_format["type"] == "json_schema"
        assert text_format["name"] == "TestSchema"
        assert text_format["schema"] == schema

    @patch("shared.services.llm_service.OpenAI")
    def test_reasoning_summary_returned(self, mock_openai_cls):
        mock_client = mock_openai_cls.return_value
        mock_result = _make_responses_result()
        mock_result.reasoning = Mock(summary="I thought about it")
        mock_client.responses.create.return_value = mock_result

        service = LLMService(api_key="fake-key", provider="openai", model_id="gpt-5.2")
        result = service.call("test", reasoning_effort="high")

        assert result["reasoning"] == "I thought about it"
        assert mock_client.responses.create.call_args.kwargs["reasoning"] == {"effort": "high"}


# ---------------------------------------------------------------------------
# call(): OpenAI Chat Completions
# ---------------------------------------------------------------------------

class TestCallChatCompletions:
    @patch("shared.services.llm_service.OpenAI")
    def test_happy_path(self, mock_openai_cls):
        mock_client = mock_openai_cls.return_value
        mock_client.chat.completions.create.return_value = _make_chat_response('{"result": "ok"}')

        service = LLMService(api_key="fake-key", provider="openai", model_id="gpt-4o")
        result = service.call("Generate a response", system_prompt="Be brief")

        assert result == {"output_text": '{"result": "ok"}', "reasoning": None, "parsed": None}
        messages = mock_client.chat.completions.create.call_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "Be brief"}
        assert messages[1] == {"role": "user", "content": "Generate a response"}

    @patch("shared.services.llm_service.OpenAI")
    def test_json_mode_off_omits_response_format(self, mock_openai_cls):
        mock_client = mock_openai_cls.return_value
        mock_client.chat.completions.create.return_value = _make_chat_response("plain text")

        service = LLMService(api_key="fake-key", provider="openai", model_id="gpt-4o-mini")
        service.call("test", json_mode=False)

        assert "response_format" not in mock_client.chat.completions.create.call_args.kwargs

    def test_missing_openai_key_raises(self):
        service = LLMService(api_key="", provider="openai", model_id="gpt-4o")

        with pytest.raises(LLMServiceError, match="OpenAI API key not configured"):
            service.call("test")


# ---------------------------------------------------------------------------
# call(): Anthropic
# ---------------------------------------------------------------------------

class TestCallAnthropic:
    def test_delegates_to_adapter(self):
        service = LLMService(api_key="", provider="anthropic", model_id="claude-sonnet-4-5")
        mock_adapter = Mock()
        mock_adapter.call_sync.return_value = {"output_text": "claude says hi", "reasoning": None, "parsed": None}
        service.anthropic_adapter = mock_adapter

        result = service.call("Hello Claude", system_prompt="sys", json_mode=False, max_tokens=8000)

        mock_adapter.call_sync.assert_called_once_with(
            prompt="Hello Claude",
            system_prompt="sys",
            reasoning_effort="none",
            json_mode=False,
            json_schema=None,
            schema_name="response",
            max_tokens=8000,
        )
        assert result["output_text"] == "claude says hi"

    def test_missing_adapter_raises(self):
        service = LLMService(api_key="", provider="anthropic", model_id="claude-sonnet-4-5")

        with pytest.raises(LLMServiceError, match="Anthropic adapter not configured"):
            service.call("test")

    @patch("shared.services.llm_service.time")
    def test_anthropic_rate_limit_is_retried(self, mock_time):
        import anthropic

        mock_time.time.return_value = 0
        service = LLMService(api_key="", provider="anthropic", model_id="claude-sonnet-4-5",
                             initial_retry_delay=0.01)
        mock_adapter = Mock()
        mock_adapter.call_sync.side_effect = [
            anthropic.RateLimitError("slow down", response=Mock(status_code=429), body=None),
            {"output_text": "ok", "reasoning": None, "parsed": None},
        ]
        service.anthropic_adapter = mock_adapter

        result = service.call("test")

        assert result["output_text"] == "ok"
        assert mock_adapter.call_sync.call_count == 2
        mock_time.sleep.assert_called_once_with(0.01)


# ---------------------------------------------------------------------------
# call(): Gemini and unknown providers
# ---------------------------------------------------------------------------

class TestCallGemini:
    @patch("shared.services.llm_service.genai")
    def test_happy_path(self, mock_genai):
        mock_gemini_client = mock_genai.Client.return_value
        mock_gemini_client.models.generate_content.return_value = Mock(text='{"plan": "gemini output"}')

        service = LLMService(api_key="", provider="google", model_id="gemini-3-pro-preview",
                             gemini_api_key="gemini-key")
        result = service.call("Generate a plan", system_prompt="sys", max_tokens=100)

        assert result["output_text"] == '{"plan": "gemini output"}'
        config = mock_gemini_client.models.generate_content.call_args.kwargs["config"]
        assert config["system_instruction"] == "sys"
        assert config["max_output_tokens"] == 100
        assert config["response_mime_type"] == "application/json"

    def test_raises_when_not_configured(self):
        service = LLMService(api_key="", provider="google", model_id="gemini-3-pro-preview")

        with pytest.raises(LLMServiceError, match="Gemini API key not configured"):
            service.call("test")


class TestUnknownProvider:
    def test_unknown_provider_raises(self):
        service = LLMService(api_key="", provider="mistral", model_id="mistral-large")

        with pytest.raises(LLMServiceError, match="Unknown LLM provider 'mistral'"):
            service.call("test")


# ---------------------------------------------------------------------------
# _execute_with_retry
# ---------------------------------------------------------------------------

class TestExecuteWithRetry:
    def test_succeeds_on_first_try(self):
        service = LLMService(api_key="", provider="openai", model_id="gpt-5.2")

        fn = Mock(return_value="success")
        assert service._execute_with_retry(fn, "TestModel") == "success"
        assert fn.call_count == 1

    @patch("shared.services.llm_service.time")
    def test_retries_on_rate_limit_with_backoff(self, mock_time):
        from openai import RateLimitError

        mock_time.time.return_value = 0
        service = LLMService(api_key="", provider="openai", model_id="gpt-5.2",
                             max_retries=3, initial_retry_delay=0.5)

        fn = Mock(side_effect=[
            RateLimitError("rate limit", response=Mock(status_code=429), body=None),
            RateLimitError("rate limit", response=Mock(status_code=429), body=None),
            "success",
        ])
        assert service._execute_with_retry(fn, "TestModel") == "success"
        assert fn.call_count == 3
        assert [c.args[0] for c in mock_time.sleep.call_args_list] == [0.5, 1.0]

    @patch("shared.services.llm_service.time")
    def test_raises_after_max_retries(self, mock_time):
        from openai import RateLimitError

        mock_time.time.return_value = 0
        service = LLMService(api_key="", provider="openai", model_id="gpt-5.2",
                             max_retries=2, initial_retry_delay=0.01)

        fn = Mock(side_effect=RateLimitError("rate limit", response=Mock(status_code=429), body=None))
        with pytest.raises(LLMServiceError, match="failed after 2 attempts"):
            service._execute_with_retry(fn, "TestModel")
        assert fn.call_count == 2

    def test_non_retryable_openai_error_raises_immediately(self):
        from openai import AuthenticationError

        service = LLMService(api_key="", provider="openai", model_id="gpt-5.2", max_retries=3)

        fn = Mock(side_effect=AuthenticationError("bad key", response=Mock(status_code=401), body=None))
        with pytest.raises(LLMServiceError, match="API error"):
            service._execute_with_retry(fn, "TestModel")
        assert fn.call_count == 1

    def test_non_retryable_anthropic_error_raises_immediately(self):
        import anthropic

        service = LLMService(api_key="", provider="anthropic", model_id="claude-sonnet-4-5")

        fn = Mock(side_effect=anthropic.AuthenticationError(
            "bad key", response=Mock(status_code=401), body=None
        ))
        with pytest.raises(LLMServiceError):
            service._execute_with_retry(fn, "TestModel")
        assert fn.call_count == 1


# ---------------------------------------------------------------------------
# parse_json_response
# ---------------------------------------------------------------------------

class TestParseJsonResponse:
    def test_valid_json(self):
        service = LLMService(api_key="", provider="openai", model_id="gpt-5.2")
        assert service.parse_json_response('{"key": "value", "num": 42}') == {"key": "value", "num": 42}

    def test_invalid_json_raises(self):
        service = LLMService(api_key="", provider="openai", model_id="gpt-5.2")

        with pytest.raises(LLMServiceError, match="Invalid JSON"):
            service.parse_json_response("not json at all")
