"""
LLM Service: centralized interface for all LLM API calls.

Routes calls to the correct provider (OpenAI, Anthropic, Google) based on
provider + model_id set from the DB-backed LLM config. The single entry point
is `call()`; every provider path goes through the same retry loop.
"""

import json
import time
from typing import Dict, Any, Optional
import anthropic
from openai import OpenAI, OpenAIError, RateLimitError, APITimeoutError
from google import genai
import logging

from shared.services.anthropic_adapter import AnthropicAdapter

logger = logging.getLogger(__name__)

# Models that use the OpenAI Responses API (vs Chat Completions)
_RESPONSES_API_MODELS = {"gpt-5.2", "gpt-5.1"}

_RETRYABLE_ERRORS = (
    RateLimitError,
    APITimeoutError,
    anthropic.RateLimitError,
    anthropic.APITimeoutError,
)
_PROVIDER_ERRORS = (OpenAIError, anthropic.APIError)


class LLMService:
    """
    Service for making LLM API calls with retry logic and error handling.

    Both `provider` and `model_id` are REQUIRED, there are no defaults.
    They come from the llm_config DB table via LLMConfigService.
    """

    def __init__(
        self,
        api_key: str,
        *,
        provider: str,
        model_id: str,
        gemini_api_key: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        max_retries: int = 3,
        initial_retry_delay: float = 1.0,
        timeout: int = 60,
    ):
        self.max_retries = max_retries
        self.initial_retry_delay = initial_retry_delay
        self.timeout = timeout
        self.provider = provider
        self.model_id = model_id

        self.client = OpenAI(api_key=api_key) if api_key else None

        self.gemini_client = genai.Client(api_key=gemini_api_key) if gemini_api_key else None

        self.anthropic_adapter = None
        if anthropic_api_key:
            self.anthropic_adapter = AnthropicAdapter(
                api_key=anthropic_api_key, timeout=timeout, model=model_id
            )

    # ─── Primary entry point ───────────────────────────────────────────

    def call(
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
        Generic LLM call. Routes to the correct API based on self.provider + self.model_id.

        Args:
            prompt: User prompt
            system_prompt: Optional system instructions
            reasoning_effort: none|low|medium|high
            json_mode: Request a JSON-only reply
            json_schema: Optional structured-output schema
            schema_name: Name for the structured-output schema
            max_tokens: Optional output token ceiling

        Returns:
            {output_text: str, reasoning: str|None, parsed: dict|None}

        Raises:
            LLMServiceError: Provider not configured, non-retryable error or retries exhausted
        """
        if self.provider == "anthropic":
            return self._call_anthropic(
                prompt, system_prompt, reasoning_effort, json_mode, json_schema, schema_name, max_tokens
            )
        elif self.provider == "google":
            text = self._call_gemini(prompt, system_prompt, json_mode=json_mode, max_tokens=max_tokens)
            return {"output_text": text, "reasoning": None, "parsed": None}
        elif self.provider == "openai":
            if self.model_id in _RESPONSES_API_MODELS:
                return self._call_responses_api(
                    prompt, system_prompt, reasoning_effort, json_mode, json_schema, schema_name, max_tokens
                )
            text = self._call_chat_completions(
                prompt, system_prompt, json_mode=json_mode, max_tokens=max_tokens
            )
            return {"output_text": text, "reasoning": None, "parsed": None}
        raise LLMServiceError(f"Unknown LLM provider '{self.provider}'")

    # ─── OpenAI Responses API (gpt-5.2, gpt-5.1) ─────────────────────

    def _call_responses_api(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        reasoning_effort: str = "none",
        json_mode: bool = True,
        json_schema: Optional[Dict[str, Any]] = None,
        schema_name: str = "response",
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Call OpenAI Responses API (gpt-5.2, gpt-5.1)."""
        self._require(self.client, "OpenAI API key not configured")
        logger.info(json.dumps({
            "step": "LLM_CALL",
            "status": "starting",
            "model": self.model_id,
            "params": {
                "reasoning_effort": reasoning_effort,
                "json_mode": json_mode,
                "has_schema": json_schema is not None,
                "has_system_prompt": system_prompt is not None,
            }
        }))

        def _api_call():
            kwargs = {
                "model": self.model_id,
                "input": prompt,
                "timeout": self.timeout,
            }
            if system_prompt:
                kwargs["instructions"] = system_prompt
            if max_tokens:
                kwargs["max_output_tokens"] = max_tokens
            if reasoning_effort != "none":
                kwargs["reasoning"] = {"effort": reasoning_effort}

            if json_schema:
                kwargs["text"] = {
                    "format": {
                        "type": "json_schema",
                        "name": schema_name,
                        "schema": json_schema,
                        "strict": True,
                    }
                }
            elif json_mode:
                kwargs["text"] = {"format": {"type": "json_object"}}

            result = self.client.responses.create(**kwargs)

            reasoning_obj = getattr(result, "reasoning", None)
            reasoning_str = None
            if reasoning_obj is not None and getattr(reasoning_obj, "summary", None):
                reasoning_str = str(reasoning_obj.summary)

            return {
                "output_text": result.output_text,
                "reasoning": reasoning_str,
                "parsed": None,
            }

        return self._execute_with_retry(_api_call, self.model_id)

    # ─── OpenAI Chat Completions API (gpt-4o, gpt-4o-mini) ───────────

    def _call_chat_completions(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        json_mode: bool = True,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
    ) -> str:
        """Call OpenAI Chat Completions API. Returns raw text."""
        self._require(self.client, "OpenAI API key not configured")
        logger.info(json.dumps({
            "step": "LLM_CALL",
            "status": "starting",
            "model": self.model_id,
            "params": {"json_mode": json_mode}
        }))

        def _api_call():
            messages = []
            if system_prompt:
                messages.append({"role": "system", "content": system_prompt})
            messages.append({"role": "user", "content": prompt})
            kwargs = {
                "model": self.model_id,
                "messages": messages,
                "max_completion_tokens": max_tokens or 2048,
                "temperature": temperature,
                "timeout": self.timeout,
            }
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}
            response = self.client.chat.completions.create(**kwargs)
            return response.choices[0].message.content

        return self._execute_with_retry(_api_call, self.model_id)

    # ─── Anthropic ────────────────────────────────────────────────────

    def _call_anthropic(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        reasoning_effort: str = "none",
        json_mode: bool = True,
        json_schema: Optional[Dict[str, Any]] = None,
        schema_name: str = "response",
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Call Anthropic Claude via the adapter."""
        self._require(self.anthropic_adapter, "Anthropic adapter not configured (missing API key)")
        logger.info(json.dumps({
            "step": "LLM_CALL",
            "status": "starting",
            "model": self.model_id,
            "params": {
                "reasoning_effort": reasoning_effort,
                "json_mode": json_mode,
                "max_tokens": max_tokens,
            }
        }))

        def _api_call():
            return self.anthropic_adapter.call_sync(
                prompt=prompt,
                system_prompt=system_prompt,
                reasoning_effort=reasoning_effort,
                json_mode=json_mode,
                json_schema=json_schema,
                schema_name=schema_name,
                max_tokens=max_tokens,
            )

        return self._execute_with_retry(_api_call, self.model_id)

    # ─── Gemini ───────────────────────────────────────────────────────

    def _call_gemini(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        json_mode: bool = True,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Call Google Gemini. Returns raw text."""
        self._require(self.gemini_client, "Gemini API key not configured")

        logger.info(json.dumps({
            "step": "LLM_CALL",
            "status": "starting",
            "model": self.model_id,
            "params": {"temperature": temperature}
        }))

        def _api_call():
            config = {"temperature": temperature}
            if system_prompt:
                config["system_instruction"] = system_prompt
            if max_tokens:
                config["max_output_tokens"] = max_tokens
            if json_mode:
                config["response_mime_type"] = "application/json"
            response = self.gemini_client.models.generate_content(
                model=self.model_id, contents=prompt, config=config
            )
            return response.text

        return self._execute_with_retry(_api_call, f"Gemini-{self.model_id}")

    # ─── Helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _require(client: Any, message: str):
        if client is None:
            raise LLMServiceError(message)

    def _execute_with_retry(self, api_call_fn, model_name: str) -> Any:
        """Execute API call with exponential backoff retry logic."""
        last_error = None
        delay = self.initial_retry_delay
        start_time = time.time()

        for attempt in range(self.max_retries):
            try:
                result = api_call_fn()
                duration_ms = int((time.time() - start_time) * 1000)

                logger.info(json.dumps({
                    "step": "LLM_CALL",
                    "status": "complete",
                    "model": model_name,
                    "output": {"response_length": len(str(result)) if result else 0},
                    "duration_ms": duration_ms,
                    "attempts": attempt + 1
                }))

                if attempt > 0:
                    logger.info(f"{model_name} call succeeded on attempt {attempt + 1}")
                return result

            except _RETRYABLE_ERRORS as e:
                last_error = e
                logger.warning(
                    f"{model_name} {type(e).__name__} (attempt {attempt + 1}/{self.max_retries}). "
                    f"Retrying in {delay}s..."
                )
                time.sleep(delay)
                delay *= 2

            except _PROVIDER_ERRORS as e:
                logger.error(f"{model_name} API error: {str(e)}")
                raise LLMServiceError(f"{model_name} API error: {str(e)}") from e

            except Exception as e:
                logger.error(f"{model_name} unexpected error: {str(e)}")
                raise LLMServiceError(f"{model_name} unexpected error: {str(e)}") from e

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(json.dumps({
            "step": "LLM_CALL",
            "status": "failed",
            "model": model_name,
            "error": str(last_error),
            "duration_ms": duration_ms,
            "attempts": self.max_retries
        }))
        raise LLMServiceError(
            f"{model_name} failed after {self.max_retries} attempts. Last error: {str(last_error)}"
        ) from last_error

    def parse_json_response(self, response: str) -> Dict[str, Any]:
        """Parse JSON response from LLM."""
        try:
            return json.loads(response)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse JSON response: {response[:200]}...")
            raise LLMServiceError(f"Invalid JSON response: {str(e)}") from e


class LLMServiceError(Exception):
    """Custom exception for LLM service errors"""
    pass
