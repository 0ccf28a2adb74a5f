"""
Response Parser.

Scans generated text line by line with two states, PROSE and
IN_CODE_BLOCK, and extracts fenced code blocks as ordered CodeArtifacts.
Prose between blocks is kept as narrative.

Fences follow Markdown conventions:
- An opener is 3+ backticks or tildes (up to 3 spaces of indent),
  optionally followed by an info string (language tag, maybe a filename)
- A closer uses the same fence character, is at least as long as the
  opener and carries nothing else
- A fence left open at end of text is closed implicitly

Filenames come from, in order of precedence: the info string, the prose
line directly before the fence, or a comment header on the block's first
line. Without any of these the filename stays unset.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..domain.entities import CodeArtifact
from ..domain.errors import ParseRecovered

logger = logging.getLogger(__name__)


class ParserState(str, Enum):
    """Scanner states."""

    PROSE = "prose"
    IN_CODE_BLOCK = "in_code_block"


# A relative file path with an extension, a dotfile, or a well-known
# extensionless file. Segments may carry route syntax ([id], +page, $id,
# @scope) and directories may be route groups like (auth).
_SEGMENT = r"[\w.\-\[\]+@$]+"
_DIRECTORY = rf"(?:{_SEGMENT}|\([\w.\-]+\))"
_PATH = (
    rf"(?:\./)?(?:{_DIRECTORY}/)*"
    rf"(?:{_SEGMENT}\.[A-Za-z0-9]+|\.[\w\-][\w.\-]*|Dockerfile|Makefile)"
)
_PATH_RE = re.compile(_PATH)

# Product names that read like files ("Next.js", "Socket.io")
_PRODUCT_EXTENSIONS = {"js", "io"}
_PRODUCT_STEMS = {
    "alpine", "angular", "backbone", "chart", "d3", "ember", "express",
    "moment", "next", "node", "nuxt", "p5", "react", "socket", "solid",
    "svelte", "three", "vue",
}

_FENCE_OPEN = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})[ \t]*(?P<info>.*?)[ \t]*$")
_FENCE_CLOSE = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})[ \t]*$")

_INFO_ATTRIBUTE = re.compile(
    rf"""(?:title|file(?:name)?|path)\s*=\s*["']?(?P<path>{_PATH})["']?""",
    re.IGNORECASE,
)

_PROSE_PATTERNS = [
    # ### src/a.ts
    re.compile(rf"^#{{1,6}}\s+[`*]*(?P<path>{_PATH})[`*]*\s*:?$"),
    # **a.ts** / __a.ts__ / **`a.ts`:**
    re.compile(rf"^(?:\*\*|__)`?(?P<path>{_PATH})`?:?(?:\*\*|__):?$"),
    # `a.ts`
    re.compile(rf"^`(?P<path>{_PATH})`:?$"),
    # File: a.ts / **Filename:** `a.ts`
    re.compile(
        rf"^[*_]*(?:file(?:name)?|path)\s*:?[*_]*\s*:?\s*[`*_]*(?P<path>{_PATH})[`*_]*:?$",
        re.IGNORECASE,
    ),
    # a.ts:
    re.compile(rf"^(?P<path>{_PATH}):$"),
    # Create `src/a.ts`:
    re.compile(rf"^.*`(?P<path>{_PATH})`\s*:$"),
]

_LABEL = r"(?:(?:file(?:name)?|path)\s*:\s*)?"

_COMMENT_PATTERNS = [
    # // a.ts   # file: a.py   -- a.sql   ; a.ini
    re.compile(rf"^(?://|#|--|;)\s*{_LABEL}(?P<path>{_PATH})$", re.IGNORECASE),
    # /* a.css */
    re.compile(rf"^/\*\s*{_LABEL}(?P<path>{_PATH})\s*\*/$", re.IGNORECASE),
    # <!-- a.html -->
    re.compile(rf"^<!--\s*{_LABEL}(?P<path>{_PATH})\s*-->$", re.IGNORECASE),
]


@dataclass
class ParsedResponse:
    """Structured view of generated text.

    Attributes:
        text: The original text, unchanged
        artifacts: Code blocks in order of appearance
        narrative: Prose segments; narrative[i] precedes artifacts[i] and
            the last entry follows the final artifact
        recovered: True if an unterminated fence was closed implicitly
    """

    text: str
    artifacts: list[CodeArtifact] = field(default_factory=list)
    narrative: list[str] = field(default_factory=list)
    recovered: bool = False

    @property
    def named_artifacts(self) -> list[CodeArtifact]:
        return [a for a in self.artifacts if a.filename]


def _parse_info(info: str) -> tuple[Optional[str], Optional[str]]:
    """Split a fence info string into (language, filename)."""
    tokens = info.split()
    if not tokens:
        return None, None

    first = tokens[0]
    language: Optional[str] = first
    filename: Optional[str] = None

    if ":" in first:
        # ```ts:src/a.ts
        lang, _, rest = first.partition(":")
        if _PATH_RE.fullmatch(rest):
            language, filename = lang or None, rest
    elif "." in first and _PATH_RE.fullmatch(first):
        # ```a.ts
        language, filename = None, first

    if filename is None:
        match = _INFO_ATTRIBUTE.search(info)
        if match:
            filename = match.group("path")
        else:
            for token in tokens[1:]:
                if _PATH_RE.fullmatch(token):
                    filename = token
                    break

    return language, filename


def _looks_like_file(path: str) -> bool:
    """Reject words that only resemble a file name ("Next.js", "v1.2")."""
    if "/" in path or path.startswith(".") or "." not in path:
        return True
    stem, _, extension = path.rpartition(".")
    if extension != extension.lower() or not re.search(r"[a-z]", extension):
        return False
    return not (extension in _PRODUCT_EXTENSIONS and stem.lower() in _PRODUCT_STEMS)


def _match_any(patterns: list[re.Pattern], line: str) -> Optional[str]:
    """Path from the first matching annotation pattern, if plausible."""
    for pattern in patterns:
        match = pattern.match(line)
        if match:
            path = match.group("path")
            return path if _looks_like_file(path) else None
    return None


class ResponseParser:
    """Extracts code artifacts and narrative from generated text.

    Usage:
        parser = ResponseParser()
        parsed = parser.parse(response.text)
        for artifact in parsed.artifacts:
            print(artifact.order_index, artifact.filename, artifact.language)
    """

    def parse(self, text: str) -> ParsedResponse:
        """Parse generated text. Never raises on malformed fences."""
        state = ParserState.PROSE
        artifacts: list[CodeArtifact] = []
        narrative: list[str] = []
        prose_lines: list[str] = []
        code_lines: list[str] = []

        fence = ""
        language: Optional[str] = None
        annotated: Optional[str] = None

        for line in text.splitlines(keepends=True):
            bare = line.rstrip("\r\n")

            if state == ParserState.PROSE:
                match = _FENCE_OPEN.match(bare)
                if match and not (match.group("fence")[0] == "`" and "`" in match.group("info")):
                    fence = match.group("fence")
                    language, annotated = _parse_info(match.group("info"))
                    if annotated is None:
                        annotated = self._filename_from_prose(prose_lines)
                    narrative.append("".join(prose_lines).strip())
                    prose_lines = []
                    code_lines = []
                    state = ParserState.IN_CODE_BLOCK
                else:
                    prose_lines.append(line)
                continue

            match = _FENCE_CLOSE.match(bare)
            if (
                match
                and match.group("fence")[0] == fence[0]
                and len(match.group("fence")) >= len(fence)
            ):
                artifacts.append(
                    self._artifact(code_lines, len(artifacts), language, annotated)
                )
                state = ParserState.PROSE
            else:
                code_lines.append(line)

        recovered = False
        if state == ParserState.IN_CODE_BLOCK:
            recovered = True
            logger.warning(str(ParseRecovered(
                f"unterminated {fence} block #{len(artifacts)} at end of text, closed implicitly"
            )))
            artifacts.append(self._artifact(code_lines, len(artifacts), language, annotated))

        narrative.append("".join(prose_lines).strip())

        return ParsedResponse(
            text=text,
            artifacts=artifacts,
            narrative=narrative,
            recovered=recovered,
        )

    @staticmethod
    def _filename_from_prose(prose_lines: list[str]) -> Optional[str]:
        """Filename from the last non-blank prose line, if it is an annotation."""
        for line in reversed(prose_lines):
            stripped = line.strip()
            if stripped:
                return _match_any(_PROSE_PATTERNS, stripped)
        return None

    @staticmethod
    def _artifact(
        code_lines: list[str],
        order_index: int,
        language: Optional[str],
        annotated: Optional[str],
    ) -> CodeArtifact:
        filename = annotated
        if filename is None and code_lines:
            filename = _match_any(_COMMENT_PATTERNS, code_lines[0].strip())

        return CodeArtifact(
            content="".join(code_lines),
            order_index=order_index,
            filename=filename,
            language=language,
        )
