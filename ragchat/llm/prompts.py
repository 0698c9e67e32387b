"""Prompt templates for grounded answering."""

from abc import ABC, abstractmethod
from typing import Any

from ragchat.llm.models import Message, Role


class PromptTemplate(ABC):
    """Abstract base class for prompt templates."""

    @abstractmethod
    def format(self, **kwargs: Any) -> str:
        """Format the template with provided variables.

        Args:
            **kwargs: Template variables.

        Returns:
            Formatted prompt string.
        """
        ...


class RAGPromptTemplate(PromptTemplate):
    """Grounding prompt for retrieval-augmented answers.

    Retrieved passages are numbered in retrieval order and placed in the
    context section. A caller-supplied system prompt replaces the whole
    template rather than being merged into it.
    """

    DEFAULT_TEMPLATE = (
        "You are a helpful assistant that answers questions based on the provided "
        "context. If the context doesn't contain enough information to answer the "
        "question, say so clearly.\n"
        "\n"
        "Context:\n"
        "{context}\n"
        "\n"
        "Question: {question}\n"
        "\n"
        "Answer based only on the context provided above. If the context doesn't "
        'contain the answer, say "I don\'t have enough information to answer this '
        'question based on the available context."'
    )

    CONTEXT_SEPARATOR = "\n\n"

    def __init__(self, template: str | None = None) -> None:
        """Initialize the template.

        Args:
            template: Custom template with {context} and {question} fields.
        """
        self.template = template or self.DEFAULT_TEMPLATE

    def format(self, **kwargs: Any) -> str:
        """Fill the template. Requires 'context' and 'question'."""
        return self.template.format(**kwargs)

    def format_context(self, chunks: list[str]) -> str:
        """Number passages from 1 and join them with blank lines."""
        return self.CONTEXT_SEPARATOR.join(
            f"[{index}] {chunk}" for index, chunk in enumerate(chunks, start=1)
        )

    def build_prompt(
        self,
        question: str,
        chunks: list[str],
        system_prompt: str | None = None,
    ) -> str:
        """Build the prompt for one question.

        Args:
            question: User question.
            chunks: Retrieved passages, best first.
            system_prompt: Replaces the template entirely when non-empty.

        Returns:
            Prompt text.
        """
        if system_prompt:
            return system_prompt
        return self.format(context=self.format_context(chunks), question=question)

    def build_messages(
        self,
        question: str,
        chunks: list[str],
        system_prompt: str | None = None,
    ) -> list[Message]:
        """Build the single-turn message list sent to the model."""
        prompt = self.build_prompt(question, chunks, system_prompt)
        return [Message(role=Role.USER, content=prompt)]
