"""Turn orchestration: context, prompts, parsing and session actors."""

from .agent import AgentConfig, AgentOrchestrator
from .context_assembler import ContextAssembler, ContextBlock
from .event_streamer import EventStreamer
from .prompt_builder import PromptBuilder
from .response_parser import ParsedResponse, ParserState, ResponseParser
from .session_registry import SessionRegistry, SessionWorker

__all__ = [
    "AgentConfig",
    "AgentOrchestrator",
    "ContextAssembler",
    "ContextBlock",
    "EventStreamer",
    "PromptBuilder",
    "ParsedResponse",
    "ParserState",
    "ResponseParser",
    "SessionRegistry",
    "SessionWorker",
]
