"""Chat completion request and response models."""

from enum import Enum

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Message role in a chat completion request."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """One role-tagged message of a single-turn request."""

    role: Role
    content: str

    def to_payload(self) -> dict[str, str]:
        """Wire form expected by chat completions APIs."""
        return {"role": self.role.value, "content": self.content}


class GenerationResult(BaseModel):
    """A completed generation.

    Token counts are whatever the provider reported, zero when it did not.
    """

    content: str = Field(description="Generated text")
    model: str = Field(description="Model that produced the text")
    finish_reason: str | None = Field(default=None, description="Why generation stopped")
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
