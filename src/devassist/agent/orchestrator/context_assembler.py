"""
Context Assembler.

Merges retrieved documentation, recent history and the project summary
into a size-bounded context block. Pure: the same inputs and budgets
always produce the same block.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..domain.entities import Message, ProjectState, RetrievalResult


@dataclass(frozen=True)
class ContextBlock:
    """Bounded context handed to the prompt builder.

    Attributes:
        documentation: Rendered documentation section (within budget)
        documents: The documents that made it into the section
        history: Most recent messages, oldest first
        project_summary: File listing and metadata (within budget)
    """

    documentation: str = ""
    documents: tuple[RetrievalResult, ...] = field(default_factory=tuple)
    history: tuple[Message, ...] = field(default_factory=tuple)
    project_summary: str = ""

    @property
    def is_degraded(self) -> bool:
        """True when no documentation made it into the context."""
        return not self.documentation

    def render(self) -> str:
        """Render documentation and project sections for the system prompt."""
        sections = []
        if self.documentation:
            sections.append(f"Relevant documentation:\n{self.documentation}")
        if self.project_summary:
            sections.append(f"Current project:\n{self.project_summary}")
        return "\n\n".join(sections)


class ContextAssembler:
    """Builds a ContextBlock under fixed character budgets.

    Usage:
        assembler = ContextAssembler(doc_budget=1000, project_budget=800, history_window=6)
        block = assembler.assemble(documents, history, project_state)
    """

    def __init__(
        self,
        doc_budget: int = 1000,
        project_budget: int = 800,
        history_window: int = 6,
    ):
        self.doc_budget = doc_budget
        self.project_budget = project_budget
        self.history_window = history_window

    def assemble(
        self,
        retrieved: list[RetrievalResult],
        history: list[Message],
        project: Optional[ProjectState] = None,
    ) -> ContextBlock:
        """Assemble the bounded context.

        Args:
            retrieved: Retrieval results (any order)
            history: Session messages, oldest first
            project: Current project state, if any

        Returns:
            ContextBlock within all budgets
        """
        documentation, documents = self._documentation(retrieved)
        return ContextBlock(
            documentation=documentation,
            documents=tuple(documents),
            history=tuple(self._recent(history)),
            project_summary=self._project_summary(project),
        )

    @staticmethod
    def render_document(doc: RetrievalResult) -> str:
        """Render one document as it appears in the documentation section."""
        header = f"## {doc.title}" if doc.title else "## (untitled)"
        if doc.url:
            header += f" ({doc.url})"
        return f"{header}\n{doc.content}"

    def _documentation(
        self, retrieved: list[RetrievalResult]
    ) -> tuple[str, list[RetrievalResult]]:
        # Highest score first; ties keep retrieval order
        ranked = sorted(retrieved, key=lambda d: d.score, reverse=True)

        parts: list[str] = []
        included: list[RetrievalResult] = []
        length = 0
        for doc in ranked:
            rendered = self.render_document(doc)
            added = len(rendered) + (2 if parts else 0)
            if length + added > self.doc_budget:
                break
            parts.append(rendered)
            included.append(doc)
            length += added

        return "\n\n".join(parts), included

    def _recent(self, history: list[Message]) -> list[Message]:
        if self.history_window <= 0:
            return []
        return list(history[-self.history_window:])

    def _project_summary(self, project: Optional[ProjectState]) -> str:
        if project is None or (not project.files and not project.metadata):
            return ""

        lines = []
        if project.files:
            lines.append("Files:")
            lines.extend(
                f"- {path} ({len(content)} chars)" for path, content in project.files.items()
            )
        if project.last_generated_at:
            lines.append(f"Last generated: {project.last_generated_at.isoformat()}")
        if project.metadata:
            meta = ", ".join(f"{k}={v}" for k, v in sorted(project.metadata.items()))
            lines.append(f"Metadata: {meta}")

        return "\n".join(lines)[: self.project_budget]
