"""
Prompt Builder for Agent Orchestrator.

Turns a ContextBlock plus the user's text into a structured Prompt:
- System prompt for the turn type (chat or code generation)
- Documentation and project sections from the assembled context
- Recent history as chat messages, ending with the current user message
"""

from __future__ import annotations

import logging

from ..domain.entities import Prompt, TurnType
from .context_assembler import ContextBlock

logger = logging.getLogger(__name__)


DEFAULT_CHAT_PROMPT = """You are a developer assistant for a cloud platform's APIs.

Answer questions using the documentation provided below when it is relevant.
If the documentation does not cover the question, say so and answer from
general knowledge. Keep answers short. Use fenced code blocks for code."""

DEFAULT_GENERATE_PROMPT = """You are a developer assistant that writes complete, working code
for a cloud platform's APIs.

Return every file as its own fenced code block with a language tag, and put
the file path on the line directly before the block, like:

**src/index.ts**
```ts
// code
```

Keep explanations brief and place them between the files. When a project
already exists, only return the files that change."""


class PromptBuilder:
    """Builds the structured prompt for one turn.

    Usage:
        prompt_builder = PromptBuilder()
        prompt = prompt_builder.build(TurnType.CHAT, context_block, "How do I list keys?")
    """

    def __init__(
        self,
        chat_system_prompt: str = DEFAULT_CHAT_PROMPT,
        generate_system_prompt: str = DEFAULT_GENERATE_PROMPT,
    ):
        """Initialize the prompt builder.

        Args:
            chat_system_prompt: Base system prompt for conversational turns
            generate_system_prompt: Base system prompt for code-generation turns
        """
        self.chat_system_prompt = chat_system_prompt
        self.generate_system_prompt = generate_system_prompt

    def build(self, turn_type: TurnType, context: ContextBlock, user_text: str) -> Prompt:
        """Build the prompt.

        Args:
            turn_type: chat or generate
            context: Assembled context
            user_text: Current user message

        Returns:
            Prompt with system text and chat messages
        """
        base = (
            self.generate_system_prompt
            if turn_type == TurnType.GENERATE
            else self.chat_system_prompt
        )

        system = base
        rendered = context.render()
        if rendered:
            system += "\n\n" + rendered
        if context.is_degraded:
            system += "\n\nNo documentation was found for this question."

        messages = [
            {"role": m.role.value, "content": m.content} for m in context.history
        ]
        messages.append({"role": "user", "content": user_text})

        logger.debug(
            f"Built {turn_type.value} prompt: {len(context.documents)} docs, "
            f"{len(context.history)} history messages"
        )
        return Prompt(system=system, messages=messages)
