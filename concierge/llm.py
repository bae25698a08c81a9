import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from storefront.config import GEMINI_API_KEY, GEMINI_MODEL, LLM_MAX_TOKENS, LLM_TEMPERATURE

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"


class LLMError(Exception):
    """The model could not be reached or returned something unusable."""


@dataclass
class FunctionCall:
    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelTurn:
    text: str = ""
    function_calls: List[FunctionCall] = field(default_factory=list)
    # parts exactly as returned, echoed back in the next request
    parts: List[Dict[str, Any]] = field(default_factory=list)
    finish_reason: Optional[str] = None


def user_content(text: str) -> Dict[str, Any]:
    return {"role": "user", "parts": [{"text": text}]}


def model_content(text: str) -> Dict[str, Any]:
    return {"role": "model", "parts": [{"text": text}]}


def function_response_content(responses: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "role": "user",
        "parts": [{"functionResponse": {"name": r["name"], "response": r["response"]}} for r in responses],
    }


class GeminiClient:
    def __init__(
        self,
        api_key: Optional[str] = GEMINI_API_KEY,
        model: str = GEMINI_MODEL,
        temperature: float = LLM_TEMPERATURE,
        max_tokens: int = LLM_MAX_TOKENS,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.transport = transport
        self.base_url = f"{GEMINI_BASE_URL}/{model}:generateContent"
        self.enabled = bool(api_key)

    def config(self) -> Dict[str, Any]:
        return {
            "provider": "gemini",
            "model": self.model,
            "temperature": self.temperature,
            "maxTokens": self.max_tokens,
            "enabled": self.enabled,
        }

    async def generate(
        self,
        contents: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        system_instruction: Optional[str] = None,
    ) -> ModelTurn:
        if not self.enabled:
            raise LLMError("Gemini API key not configured")

        body: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_tokens,
            },
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if tools:
            body["tools"] = tools
            body["toolConfig"] = {"functionCallingConfig": {"mode": "AUTO"}}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.base_url,
                    headers={"x-goog-api-key": self.api_key},
                    json=body,
                )
        except httpx.HTTPError as e:
            logger.error(f"Gemini API request failed: {e}")
            raise LLMError(f"Gemini API request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Gemini API error: {response.status_code} {response.text[:200]}")
            raise LLMError(f"Gemini API returned {response.status_code}")

        try:
            result = response.json()
        except ValueError as e:
            raise LLMError("Gemini API returned invalid JSON") from e
        return self._parse(result)

    @staticmethod
    def _parse(result: Dict[str, Any]) -> ModelTurn:
        candidates = result.get("candidates") or []
        if not candidates:
            reason = result.get("promptFeedback", {}).get("blockReason")
            raise LLMError(f"Gemini returned no candidates{f' ({reason})' if reason else ''}")

        candidate = candidates[0]
        parts = candidate.get("content", {}).get("parts") or []
        turn = ModelTurn(parts=parts, finish_reason=candidate.get("finishReason"))
        texts = []
        for part in parts:
            if "functionCall" in part:
                call = part["functionCall"]
                turn.function_calls.append(FunctionCall(name=call.get("name", ""), args=call.get("args") or {}))
            elif part.get("text") and not part.get("thought"):
                texts.append(part["text"])
        turn.text = "".join(texts).strip()
        if not turn.text and not turn.function_calls and turn.finish_reason not in (None, "STOP"):
            raise LLMError(f"Gemini stopped without output ({turn.finish_reason})")
        return turn
