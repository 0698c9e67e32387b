"""Text generation clients and prompt templates."""

from ragchat.llm.client import LLMClient, OpenAICompatibleClient
from ragchat.llm.models import GenerationResult, Message, Role
from ragchat.llm.prompts import PromptTemplate, RAGPromptTemplate

__all__ = [
    "GenerationResult",
    "LLMClient",
    "Message",
    "OpenAICompatibleClient",
    "PromptTemplate",
    "RAGPromptTemplate",
    "Role",
]
