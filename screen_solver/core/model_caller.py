import json
from typing import Any, Dict, List, Optional, Protocol, Sequence

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import ValidationError

from ..utils.imaging import image_to_data_url
from .config import SolverConfig
from .types import AnswerResponse, CodeResponse, ModelResponse, RawResponse


class ModelCallError(Exception):
    """A model request failed: transport, timeout, or empty completion."""


class ModelCaller(Protocol):
    async def ask(
        self,
        images: Sequence[bytes],
        system_prompt: str,
        user_prompt: str,
        model: str,
        response_shape: str = "json",
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        ...


def flatten_content(content: Any) -> str:
    """Flatten OpenAI-style mixed content into a single string."""
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
            elif isinstance(block, str):
                parts.append(block)
        return "\n".join(parts).strip()
    return str(content)


def strip_code_fence(text: str) -> str:
    if "```json" in text:
        return text.split("```json")[1].split("```")[0].strip()
    if "```" in text:
        return text.split("```")[1].split("```")[0].strip()
    return text.strip()


def load_json_object(text: str) -> Dict[str, Any]:
    """Decode a completion that should hold one JSON object; raises ValueError otherwise."""
    raw = strip_code_fence(text or "")
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        # try to extract JSON snippet
        start = raw.find("{")
        end = raw.rfind("}")
        if start == -1 or end <= start:
            raise ValueError(f"Response is not JSON: {preview(raw)}")
        try:
            parsed = json.loads(raw[start: end + 1])
        except json.JSONDecodeError as e:
            raise ValueError(f"Response is not JSON: {preview(raw)}") from e
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def parse_model_response(text: str) -> ModelResponse:
    """Map a fast-path completion onto the code | answer | raw union."""
    try:
        payload = load_json_object(text)
    except ValueError:
        return RawResponse(raw=text)

    kind = payload.get("responseType")
    try:
        if kind == "code":
            return CodeResponse.model_validate(payload)
        if kind == "answer":
            return AnswerResponse.model_validate(payload)
    except ValidationError as e:
        print(f"[ModelCaller] {kind} response failed validation: {e.error_count()} error(s)")
    return RawResponse(raw=text)


def preview(text: str, limit: int = 200) -> str:
    text = text or ""
    return text if len(text) <= limit else text[: limit - 3] + "..."


class ChatModelCaller:
    """ModelCaller backed by an OpenAI-compatible chat endpoint."""

    def __init__(self, config: SolverConfig):
        self.config = config

    def _client(self, model: str, temperature: Optional[float], max_tokens: Optional[int]) -> ChatOpenAI:
        return ChatOpenAI(
            model=model,
            api_key=self.config.api_key,
            base_url=self.config.base_url,
            temperature=0.0 if temperature is None else temperature,
            max_tokens=max_tokens,
            timeout=self.config.request_timeout,
            max_retries=1,
        )

    def build_messages(self, images: Sequence[bytes], system_prompt: str, user_prompt: str) -> List[BaseMessage]:
        messages: List[BaseMessage] = []
        if system_prompt:
            messages.append(SystemMessage(content=system_prompt))

        human_content: List[Dict[str, Any]] = [{"type": "text", "text": user_prompt}]
        for blob in images:
            human_content.append({"type": "image_url", "image_url": {"url": image_to_data_url(blob)}})
        messages.append(HumanMessage(content=human_content))
        return messages

    async def ask(
        self,
        images: Sequence[bytes],
        system_prompt: str,
        user_prompt: str,
        model: str,
        response_shape: str = "json",
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        if response_shape not in ("json", "text"):
            raise ValueError(f"Unknown response shape: {response_shape}")

        try:
            messages = self.build_messages(images, system_prompt, user_prompt)
        except OSError as e:
            raise ModelCallError(f"Could not encode screenshot: {e}") from e

        llm = self._client(model, temperature, max_tokens)
        extra: Dict[str, Any] = {}
        if response_shape == "json":
            extra["response_format"] = {"type": "json_object"}

        try:
            result = await llm.ainvoke(messages, **extra)
        except Exception as e:
            print(f"[ModelCaller] {model} call failed: {e}")
            raise ModelCallError(f"{model}: {e}") from e

        text = flatten_content(result.content)
        if not text:
            raise ModelCallError(f"{model} returned an empty completion")
        return text
