"""
LLM provider capability and its open-agent-sdk implementation
"""

import asyncio
import os
from typing import Dict, List, Mapping, Optional, Protocol

from open_agent import TextBlock  # type: ignore
from open_agent.types import AgentOptions  # type: ignore
from open_agent import client as oa_client  # type: ignore
from pydantic import BaseModel

from src.analyzers.model_selector import get_model_provider, get_provider_api_key
from src.utils.config import LLMConfig
from src.utils.logger import logger


ChatMessage = Dict[str, str]

JSON_OBJECT = {"type": "json_object"}

# OpenAI-compatible endpoints per provider family
DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "deepseek": "https://api.deepseek.com/v1",
    "gemini": "https://generativelanguage.googleapis.com/v1beta/openai/",
    "anthropic": "https://api.anthropic.com/v1/",
    "ollama": "http://localhost:11434/v1",
}


class ChatResponse(BaseModel):
    content: str
    model: str = ""


class AIProviderError(Exception):
    """Raised when a chat completion cannot be obtained."""

    pass


class AIProvider(Protocol):
    async def chat(
        self,
        model: str,
        messages: List[ChatMessage],
        response_format: Optional[dict] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatResponse:
        ...


def system_message(content: str) -> ChatMessage:
    return {"role": "system", "content": content}


def user_message(content: str) -> ChatMessage:
    return {"role": "user", "content": content}


class OpenAgentProvider:
    """Chat completions through open-agent-sdk against OpenAI-compatible endpoints"""

    def __init__(self, llm_config: Optional[LLMConfig] = None, env: Optional[Mapping[str, str]] = None):
        self.llm_config = llm_config or LLMConfig()
        self.env = os.environ if env is None else env

    def _endpoint_for(self, model: str):
        provider = get_model_provider(model)
        base_url = self.env.get(f"{provider.upper()}_BASE_URL") or DEFAULT_BASE_URLS.get(
            provider, self.llm_config.api_url
        )
        api_key = get_provider_api_key(provider, self.env) or self.llm_config.api_key or "not-needed"
        return base_url, api_key

    async def chat(
        self,
        model: str,
        messages: List[ChatMessage],
        response_format: Optional[dict] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatResponse:
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        user_parts = [m["content"] for m in messages if m["role"] != "system"]

        if response_format and response_format.get("type") == "json_object":
            system_parts.append(
                "Return ONLY a single valid JSON object. No markdown code blocks, no text before or after it."
            )

        base_url, api_key = self._endpoint_for(model)
        options = AgentOptions(
            system_prompt="\n\n".join(system_parts),
            model=model,
            base_url=base_url,
            temperature=self.llm_config.temperature,
            max_tokens=max_tokens or self.llm_config.max_tokens,
            api_key=api_key,
            timeout=self.llm_config.timeout,
        )

        text_parts: List[str] = []

        try:
            async with asyncio.timeout(self.llm_config.timeout):
                async for msg in oa_client.query("\n\n".join(user_parts), options):
                    for block in msg.content:
                        if isinstance(block, TextBlock):
                            text_parts.append(block.text)
        except asyncio.TimeoutError as e:
            logger.warning(f"LLM call to {model} timed out after {self.llm_config.timeout}s")
            raise AIProviderError(f"LLM call to {model} timed out") from e

        return ChatResponse(content="".join(text_parts).strip(), model=model)
