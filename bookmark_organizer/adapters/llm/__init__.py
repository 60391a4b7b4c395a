"""LLM transport: provider request builders and the chat client."""

from bookmark_organizer.adapters.llm.client import ChatClient
from bookmark_organizer.adapters.llm.factory import LLMClientFactory, ProviderKind
from bookmark_organizer.adapters.llm.protocol import LLMClientProtocol, ParsedReply

__all__ = ["ChatClient", "LLMClientFactory", "LLMClientProtocol", "ParsedReply", "ProviderKind"]
