"""Unit tests for shared/services/anthropic_adapter.py: AnthropicAdapter."""

import json
import pytest
from unittest.mock import MagicMock, patch

from shared.services.anthropic_adapter import (
    AnthropicAdapter,
    DEFAULT_CLAUDE_MODEL,
    DEFAULT_MAX_TOKENS,
    JSON_ONLY_INSTRUCTION,
    THINKING_BUDGET_MAP,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def adapter():
    with patch("shared.services.anthropic_adapter.anthropic") as mock_anthropic:
        mock_anthropic.Anthropic.return_value = MagicMock()
        ad = AnthropicAdapter(api_key="test-key-fake")
    return ad


def _block(block_type, **fields):
    block = MagicMock()
    block.type = block_type
    for name, value in fields.items():
        setattr(block, name, value)
    return block


def _response(*blocks):
    response = MagicMock()
    response.content = list(blocks)
    return response


# ---------------------------------------------------------------------------
# Tests: Constants
# ---------------------------------------------------------------------------

class TestConstants:
    def test_default_model(self):
        assert DEFAULT_CLAUDE_MODEL == "claude-sonnet-4-5"

    def test_default_max_tokens(self):
        assert DEFAULT_MAX_TOKENS == 8000

    def test_thinking_budget_map(self):
        assert THINKING_BUDGET_MAP == {"none": 0, "low": 2_000, "medium": 4_000, "high": 6_000}


# ---------------------------------------------------------------------------
# Tests: build_kwargs
# ---------------------------------------------------------------------------

class TestBuildKwargs:
    def test_basic_json_mode(self, adapter):
        kwargs = adapter.build_kwargs("Hello", reasoning_effort="none", json_mode=True)

        assert kwargs["model"] == DEFAULT_CLAUDE_MODEL
        assert kwargs["max_tokens"] == DEFAULT_MAX_TOKENS
        assert kwargs["messages"] == [{"role": "user", "content": "Hello"}]
        assert kwargs["system"] == JSON_ONLY_INSTRUCTION
        assert "thinking" not in kwargs

    def test_no_json_mode_without_system_prompt(self, adapter):
        kwargs = adapter.build_kwargs("Hello", json_mode=False)
        assert "system" not in kwargs

    def test_system_prompt_passed_through(self, adapter):
        kwargs = adapter.build_kwargs("Hello", system_prompt="You are a teacher.", json_mode=False)
        assert kwargs["system"] == "You are a teacher."

    def test_system_prompt_combined_with_json_instruction(self, adapter):
        kwargs = adapter.build_kwargs("Hello", system_prompt="You are a teacher.", json_mode=True)
        assert kwargs["system"] == f"You are a teacher.\n\n{JSON_ONLY_INSTRUCTION}"

    def test_explicit_max_tokens(self, adapter):
        kwargs = adapter.build_kwargs("Hello", json_mode=False, max_tokens=1200)
        assert kwargs["max_tokens"] == 1200

    def test_thinking_budget_added_to_max_tokens(self, adapter):
        kwargs = adapter.build_kwargs("Hello", reasoning_effort="high", json_mode=False)

        assert kwargs["thinking"] == {"type": "enabled", "budget_tokens": 6_000}
        assert kwargs["max_tokens"] == DEFAULT_MAX_TOKENS + 6_000

    def test_with_json_schema(self, adapter):
        schema = {"type": "object", "properties": {"answer": {"type": "string"}}}
        kwargs = adapter.build_kwargs(
            "Hello", json_mode=True, json_schema=schema, schema_name="my_output"
        )

        assert kwargs["tools"][0]["name"] == "my_output"
        assert kwargs["tools"][0]["input_schema"] == schema
        assert kwargs["tool_choice"] == {"type": "tool", "name": "my_output"}
        assert "system" not in kwargs

    def test_schema_with_thinking_uses_auto_tool_choice(self, adapter):
        schema = {"type": "object", "properties": {"x": {"type": "string"}}}
        kwargs = adapter.build_kwargs("Hello", reasoning_effort="low", json_schema=schema)
        assert kwargs["tool_choice"] == {"type": "auto"}

    def test_unknown_reasoning_effort(self, adapter):
        kwargs = adapter.build_kwargs("Hello", reasoning_effort="extreme")
        assert "thinking" not in kwargs
        assert kwargs["max_tokens"] == DEFAULT_MAX_TOKENS


# ---------------------------------------------------------------------------
# Tests: parse_response
# ---------------------------------------------------------------------------

class TestParseResponse:
    def test_json_text_is_parsed(self, adapter):
        result = adapter.parse_response(_response(_block("text", text='{"result": "ok"}')))

        assert result["output_text"] == '{"result": "ok"}'
        assert result["parsed"] == {"result": "ok"}
        assert result["reasoning"] is None

    def test_plain_text_without_json_mode(self, adapter):
        result = adapter.parse_response(
            _response(_block("text", text="Title: Fractions")), json_mode=False
        )

        assert result["output_text"] == "Title: Fractions"
        assert result["parsed"] is None

    def test_invalid_json_in_json_mode_keeps_text(self, adapter):
        result = adapter.parse_response(_response(_block("text", text="not json")))

        assert result["output_text"] == "not json"
        assert result["parsed"] is None

    def test_multiple_text_blocks_joined(self, adapter):
        result = adapter.parse_response(
            _response(_block("text", text="Part one. "), _block("text", text="Part two.")),
            json_mode=False,
        )
        assert result["output_text"] == "Part one. Part two."

    def test_thinking_block_becomes_reasoning(self, adapter):
        result = adapter.parse_response(
            _response(
                _block("thinking", thinking="Consider the student levels"),
                _block("text", text='{"a": 1}'),
            )
        )
        assert result["reasoning"] == "Consider the student levels"
        assert result["parsed"] == {"a": 1}

    def test_tool_use_block_is_parsed_output(self, adapter):
        schema = {"type": "object"}
        result = adapter.parse_response(
            _response(_block("tool_use", input={"answer": "42"})), json_schema=schema
        )

        assert result["parsed"] == {"answer": "42"}
        assert json.loads(result["output_text"]) == {"answer": "42"}


# ---------------------------------------------------------------------------
# Tests: call_sync
# ---------------------------------------------------------------------------

class TestCallSync:
    def test_call_sync_sends_built_kwargs(self, adapter):
        adapter.client.messages.create.return_value = _response(_block("text", text="Lesson"))

        result = adapter.call_sync(
            "Make a lesson", system_prompt="Be zero-prep.", json_mode=False, max_tokens=500
        )

        kwargs = adapter.client.messages.create.call_args.kwargs
        assert kwargs["system"] == "Be zero-prep."
        assert kwargs["max_tokens"] == 500
        assert kwargs["messages"] == [{"role": "user", "content": "Make a lesson"}]
        assert result["output_text"] == "Lesson"

    def test_init_uses_given_model(self):
        with patch("shared.services.anthropic_adapter.anthropic") as mock_anthropic:
            ad = AnthropicAdapter(api_key="k", timeout=30, model="claude-haiku-4-5-20251001")

        mock_anthropic.Anthropic.assert_called_once_with(api_key="k", timeout=30)
        assert ad.model == "claude-haiku-4-5-20251001"
