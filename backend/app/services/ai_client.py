"""
Azure OpenAI Chat Service

Thin wrapper around the hosted chat-completion endpoint used by every AI
feature (import enhancement, CSV structure analysis, image extraction,
insights and the recommendation agent).
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from openai import AzureOpenAI

from app.config import settings

logger = logging.getLogger(__name__)

_CODE_BLOCK_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
_CODE_BLOCK_ANY = re.compile(r"```[a-zA-Z]*\s*([\s\S]*?)\s*```")


class AIConfigurationError(RuntimeError):
    """Raised when the Azure OpenAI endpoint or key is missing."""


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: str


@dataclass
class ChatResult:
    content: Optional[str]
    finish_reason: str
    tool_calls: List[ToolCall] = field(default_factory=list)

    def to_message(self) -> Dict[str, Any]:
        """Assistant message to append to the running conversation."""
        message: Dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in self.tool_calls
            ]
        return message


def extract_json_from_code_block(text: str) -> str:
    """Return the JSON payload of a fenced block, or the trimmed text when unfenced."""
    if not text:
        return ""
    match = _CODE_BLOCK_JSON.search(text)
    if match:
        return match.group(1)
    match = _CODE_BLOCK_ANY.search(text)
    if match:
        return match.group(1)
    return text.strip()


def create_openai_client() -> AzureOpenAI:
    """Build an Azure OpenAI client from settings, including any custom headers."""
    if not settings.is_ai_configured:
        raise AIConfigurationError(
            "Azure AI configuration is missing. Please configure AZURE_OPENAI_ENDPOINT and AZURE_OPENAI_API_KEY."
        )

    return AzureOpenAI(
        azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
        api_key=settings.AZURE_OPENAI_API_KEY,
        api_version=settings.AZURE_OPENAI_API_VERSION,
        default_headers=settings.azure_openai_extra_headers or None,
        timeout=settings.AZURE_OPENAI_TIMEOUT,
    )


class AzureChatService:
    """Service for chat completions against the configured deployment."""

    def __init__(self, client: Optional[AzureOpenAI] = None, deployment: Optional[str] = None):
        self._client = client
        self.deployment = deployment or settings.AZURE_OPENAI_CHAT_DEPLOYMENT

    @property
    def client(self) -> AzureOpenAI:
        if self._client is None:
            self._client = create_openai_client()
        return self._client

    def complete_chat(self, system_prompt: str, user_prompt: str) -> str:
        """Single-turn completion; returns the assistant text."""
        result = self.complete_messages([
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ])
        return result.content or ""

    def complete_messages(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatResult:
        """Multi-turn completion, optionally exposing function tools."""
        kwargs: Dict[str, Any] = {"model": self.deployment, "messages": messages}
        if tools:
            kwargs["tools"] = tools

        response = self.client.chat.completions.create(**kwargs)
        choice = response.choices[0]
        message = choice.message

        tool_calls = [
            ToolCall(id=call.id, name=call.function.name, arguments=call.function.arguments or "{}")
            for call in (message.tool_calls or [])
        ]

        logger.debug(
            "Chat completion finished with reason %s (%s tool calls)",
            choice.finish_reason,
            len(tool_calls),
        )
        return ChatResult(
            content=message.content,
            finish_reason=choice.finish_reason or "",
            tool_calls=tool_calls,
        )


# Singleton instance
_chat_service = None


def get_chat_service() -> AzureChatService:
    """Get or create the chat service instance."""
    global _chat_service
    if _chat_service is None:
        _chat_service = AzureChatService()
    return _chat_service
