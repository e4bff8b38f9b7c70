"""
Anthropic (Claude) Adapter

Translates the provider-neutral LLMService call into the Anthropic Messages API.

Handles:
- Caller system prompt plus the JSON-only instruction when json_mode is on
- Reasoning effort -> thinking budget mapping
- JSON schema -> forced tool_use structured output
- Response parsing into the standard {output_text, reasoning, parsed} dict
"""

import json
import logging
from typing import Dict, Any, Optional

import anthropic

logger = logging.getLogger(__name__)

DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-5"
DEFAULT_MAX_TOKENS = 8000

THINKING_BUDGET_MAP = {
    "none": 0,
    "low": 2_000,
    "medium": 4_000,
    "high": 6_000,
}

JSON_ONLY_INSTRUCTION = (
    "You MUST respond with valid JSON only. No markdown, no explanation outside the JSON."
)


class AnthropicAdapter:
    """Builds Messages API requests and normalises Claude responses."""

    def __init__(self, api_key: str, timeout: int = 60, model: str = DEFAULT_CLAUDE_MODEL):
        self.model = model
        self.client = anthropic.Anthropic(api_key=api_key, timeout=timeout)

    def build_kwargs(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        reasoning_effort: str = "none",
        json_mode: bool = True,
        json_schema: Optional[Dict[str, Any]] = None,
        schema_name: str = "response",
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Build kwargs for anthropic messages.create().

        Args:
            prompt: User message content
            system_prompt: Optional system prompt sent ahead of any JSON instruction
            reasoning_effort: none|low|medium|high, mapped to an extended-thinking budget
            json_mode: Ask for a bare JSON reply (ignored when json_schema is set)
            json_schema: Forces a tool_use reply validated against this schema
            schema_name: Tool name used for the schema
            max_tokens: Output token ceiling; the thinking budget is added on top

        Returns:
            Dict of keyword arguments for messages.create()
        """
        budget = THINKING_BUDGET_MAP.get(reasoning_effort, 0)
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": (max_tokens or DEFAULT_MAX_TOKENS) + budget,
        }

        if budget > 0:
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": budget}

        system_parts = [system_prompt] if system_prompt else []
        if json_schema:
            kwargs["tools"] = [
                {
                    "name": schema_name,
                    "description": f"Return the {schema_name} output.",
                    "input_schema": json_schema,
                }
            ]
            # Extended thinking cannot be combined with a forced tool choice
            kwargs["tool_choice"] = (
                {"type": "auto"} if budget > 0 else {"type": "tool", "name": schema_name}
            )
        elif json_mode:
            system_parts.append(JSON_ONLY_INSTRUCTION)

        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)

        kwargs["messages"] = [{"role": "user", "content": prompt}]
        return kwargs

    def parse_response(
        self,
        response: Any,
        json_mode: bool = True,
        json_schema: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Collapse content blocks into {output_text, reasoning, parsed}."""
        text_parts = []
        reasoning_str = None
        parsed = None

        for block in response.content:
            if block.type == "thinking":
                reasoning_str = block.thinking
            elif block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                parsed = block.input

        output_text = json.dumps(parsed) if parsed is not None else "".join(text_parts)

        if (json_mode or json_schema) and parsed is None and output_text:
            try:
                parsed = json.loads(output_text)
            except json.JSONDecodeError:
                logger.warning("Claude reply was not valid JSON; returning text only")

        return {
            "output_text": output_text,
            "reasoning": reasoning_str,
            "parsed": parsed if (json_mode or json_schema) else None,
        }

    def call_sync(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        reasoning_effort: str = "none",
        json_mode: bool = True,
        json_schema: Optional[Dict[str, Any]] = None,
        schema_name: str = "response",
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Blocking call to Claude, returning the standard output dict."""
        kwargs = self.build_kwargs(
            prompt, system_prompt, reasoning_effort, json_mode, json_schema, schema_name, max_tokens
        )
        response = self.client.messages.create(**kwargs)
        return self.parse_response(response, json_mode, json_schema)
