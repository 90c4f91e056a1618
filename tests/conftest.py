"""
Shared test doubles.

FakeLLM replays scripted replies in order. A reply can be a string
(returned as the response content), an Exception (raised) or a callable
taking the messages list (its return value is used, or raised if it is
an Exception).
"""

import json

import pytest

from src.providers.ai_provider import ChatResponse


class FakeLLM:
    def __init__(self, replies=None, default=None):
        self.replies = list(replies or [])
        self.default = default
        self.calls = []

    async def chat(self, model, messages, response_format=None, max_tokens=None):
        self.calls.append({
            "model": model,
            "messages": messages,
            "response_format": response_format,
            "max_tokens": max_tokens,
        })
        if self.replies:
            reply = self.replies.pop(0)
        elif self.default is not None:
            reply = self.default
        else:
            raise AssertionError("FakeLLM ran out of scripted replies")

        if callable(reply) and not isinstance(reply, Exception):
            reply = reply(messages)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            reply = json.dumps(reply)
        return ChatResponse(content=reply, model=model)

    @property
    def models(self):
        return [call["model"] for call in self.calls]


@pytest.fixture
def make_llm():
    """Factory for FakeLLM instances"""
    return FakeLLM
