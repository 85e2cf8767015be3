# llm_client.py
import time
import logging
from typing import Any, Dict, Optional
from dataclasses import dataclass

import anthropic
from google import genai
from google.genai import types as genai_types
from openai import OpenAI

from multi_engine_dashboard.config import (
    ENGINES,
    MAX_OUTPUT_TOKENS,
    PROVIDER_TIMEOUT,
    SQLITE_MAX_INT,
    EngineSettings,
    ProviderSettings,
)
from multi_engine_dashboard.errors import (
    ConfigurationError,
    DashboardError,
    ProviderError,
    ValidationError,
)

logger = logging.getLogger(__name__)

__all__ = [
    "TextResponse",
    "ProviderGateway",
    "OpenAIGateway",
    "AnthropicGateway",
    "GoogleGateway",
    "build_gateways",
    "validate_request",
]

NO_RESPONSE_TEXT = "No response generated"

# =========================
# Public data structures
# =========================

@dataclass
class TextResponse:
    """
    Normalized text response returned by every gateway.
    """
    text: str
    raw: Dict[str, Any]
    model: str
    # Optional usage metadata
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    latency: Optional[float] = None  # seconds


def validate_request(prompt: Any, step_id: Any) -> None:
    """
    Raise ValidationError unless prompt is a non-empty string and
    step_id is an integer id.
    """
    if not prompt or not isinstance(prompt, str):
        raise ValidationError("Prompt is required and must be a string")
    if isinstance(step_id, bool) or not isinstance(step_id, int):
        raise ValidationError("Step ID is required")
    if not 0 < step_id <= SQLITE_MAX_INT:
        raise ValidationError("Invalid step ID")


# =========================
# Gateway base
# =========================

class ProviderGateway:
    """
    One round trip to one text-generation provider.

    Responsibilities:
    - Request validation and credential check
    - Request execution (single attempt)
    - Response normalization and latency measurement

    Non-responsibilities:
    - No retries / rate limiting
    - No persistence
    """

    engine: str = ""

    def __init__(
        self,
        settings: EngineSettings,
        *,
        client: Any = None,
        timeout: float = PROVIDER_TIMEOUT,
        max_output_tokens: int = MAX_OUTPUT_TOKENS,
    ):
        self._settings = settings
        self._client = client
        self._timeout = timeout
        self._max_output_tokens = max_output_tokens

    @property
    def model(self) -> str:
        return self._settings.model

    # -------------------------
    # Public API
    # -------------------------

    def generate(self, prompt: str, step_id: int) -> TextResponse:
        """
        Send `prompt` to the provider and return a normalized response.

        Raises ValidationError, ConfigurationError (missing credential)
        or ProviderError (anything that went wrong on the wire).
        """
        validate_request(prompt, step_id)

        if not self._settings.configured:
            env_name = ENGINES.get(self.engine, {}).get("api_key_env", "API key")
            raise ConfigurationError(f"{env_name} is not configured", engine=self.engine)

        logger.debug(
            "%s request: model=%s, step=%s, prompt_len=%d",
            self.engine,
            self.model,
            step_id,
            len(prompt),
        )

        try:
            client = self._get_client()
            start_ts = time.perf_counter()
            response = self._call(client, prompt)
            latency = time.perf_counter() - start_ts
            result = self._normalize(response)
        except DashboardError:
            raise
        except Exception as e:
            logger.warning("%s call failed: %s", self.engine, e)
            raise ProviderError(
                str(e) or f"Failed to generate response from {self.engine}",
                engine=self.engine,
            ) from e

        result.latency = latency
        logger.info(
            "%s completed: model=%s, tokens=%s+%s, %.0f ms",
            self.engine,
            result.model,
            result.input_tokens,
            result.output_tokens,
            latency * 1000,
        )
        return result

    # -------------------------
    # Provider hooks
    # -------------------------

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _build_client(self) -> Any:
        raise NotImplementedError

    def _call(self, client: Any, prompt: str) -> Any:
        raise NotImplementedError

    def _normalize(self, response: Any) -> TextResponse:
        raise NotImplementedError

    # -------------------------
    # Utilities
    # -------------------------

    @staticmethod
    def _to_dict(response: Any) -> Dict[str, Any]:
        """
        Convert SDK response into a serializable dict (best-effort).
        """
        try:
            if hasattr(response, "to_dict") and callable(getattr(response, "to_dict")):
                return response.to_dict()

            if hasattr(response, "model_dump"):
                try:
                    return response.model_dump(warnings="none")
                except TypeError:
                    # Older Pydantic / SDK versions may not accept warnings=
                    return response.model_dump()
        except Exception:
            logger.exception("Failed to convert provider response to dict")

        # Last-resort fallback
        return {"repr": repr(response)}


# =========================
# OpenAI (Responses API)
# =========================

class OpenAIGateway(ProviderGateway):
    engine = "OpenAI"

    def _build_client(self) -> Any:
        return OpenAI(
            api_key=self._settings.api_key,
            timeout=self._timeout,
            max_retries=0,
        )

    def _call(self, client: Any, prompt: str) -> Any:
        return client.responses.create(
            model=self.model,
            input=prompt,
            max_output_tokens=self._max_output_tokens,
        )

    def _normalize(self, response: Any) -> TextResponse:
        raw = self._to_dict(response)
        usage = raw.get("usage") or {}
        return TextResponse(
            text=self._extract_text(response) or NO_RESPONSE_TEXT,
            raw=raw,
            model=raw.get("model") or self.model,
            input_tokens=usage.get("input_tokens"),
            output_tokens=usage.get("output_tokens"),
        )

    @staticmethod
    def _extract_text(response: Any) -> str:
        """
        Best-effort text extraction across SDK versions.
        """
        if getattr(response, "output_text", None):
            return response.output_text

        chunks: list[str] = []
        for block in getattr(response, "output", None) or []:
            content = block.get("content") if isinstance(block, dict) else getattr(block, "content", None)
            for c in content or []:
                c_type = c.get("type") if isinstance(c, dict) else getattr(c, "type", None)
                if c_type == "output_text":
                    chunks.append((c.get("text") if isinstance(c, dict) else c.text) or "")
        return "".join(chunks)


# =========================
# Anthropic (Messages API)
# =========================

class AnthropicGateway(ProviderGateway):
    engine = "Anthropic"

    def _build_client(self) -> Any:
        return anthropic.Anthropic(
            api_key=self._settings.api_key,
            timeout=self._timeout,
            max_retries=0,
        )

    def _call(self, client: Any, prompt: str) -> Any:
        return client.messages.create(
            model=self.model,
            max_tokens=self._max_output_tokens,
            messages=[{"role": "user", "content": prompt}],
        )

    def _normalize(self, response: Any) -> TextResponse:
        text = "".join(
            block.text
            for block in (getattr(response, "content", None) or [])
            if getattr(block, "type", None) == "text"
        )
        usage = getattr(response, "usage", None)
        return TextResponse(
            text=text or NO_RESPONSE_TEXT,
            raw=self._to_dict(response),
            model=getattr(response, "model", None) or self.model,
            input_tokens=getattr(usage, "input_tokens", None),
            output_tokens=getattr(usage, "output_tokens", None),
        )


# =========================
# Google (google-genai)
# =========================

class GoogleGateway(ProviderGateway):
    engine = "Google"

    def _build_client(self) -> Any:
        return genai.Client(
            api_key=self._settings.api_key,
            # HttpOptions.timeout is in milliseconds
            http_options=genai_types.HttpOptions(timeout=int(self._timeout * 1000)),
        )

    def _call(self, client: Any, prompt: str) -> Any:
        return client.models.generate_content(
            model=self.model,
            contents=prompt,
            config=genai_types.GenerateContentConfig(
                max_output_tokens=self._max_output_tokens,
            ),
        )

    def _normalize(self, response: Any) -> TextResponse:
        usage = getattr(response, "usage_metadata", None)
        return TextResponse(
            text=getattr(response, "text", None) or NO_RESPONSE_TEXT,
            raw=self._to_dict(response),
            model=getattr(response, "model_version", None) or self.model,
            input_tokens=getattr(usage, "prompt_token_count", None),
            output_tokens=getattr(usage, "candidates_token_count", None),
        )


GATEWAY_CLASSES = {
    "OpenAI": OpenAIGateway,
    "Anthropic": AnthropicGateway,
    "Google": GoogleGateway,
}


def build_gateways(
    settings: ProviderSettings,
    *,
    clients: Optional[Dict[str, Any]] = None,
    timeout: float = PROVIDER_TIMEOUT,
) -> Dict[str, ProviderGateway]:
    """
    One gateway per engine, in ENGINES order. `clients` optionally maps
    engine name to a prebuilt SDK client.
    """
    clients = clients or {}
    return {
        name: GATEWAY_CLASSES[name](
            settings.get(name),
            client=clients.get(name),
            timeout=timeout,
        )
        for name in ENGINES
    }
