"""
Unit tests for ResponseParser.

Covers fence scanning, artifact ordering, filename recovery from each
annotation style, narrative segments and unterminated-fence recovery.
"""

import logging

import pytest

from src.devassist.agent.orchestrator.response_parser import ResponseParser


@pytest.fixture
def parser():
    return ResponseParser()


class TestFenceScanning:
    """Tests for block detection and ordering."""

    def test_no_fences_is_all_prose(self, parser):
        """Zero fences yields zero artifacts and the whole text as prose."""
        text = "A key-value lookup returns the value stored under a key.\nIt is O(1)."

        parsed = parser.parse(text)

        assert parsed.artifacts == []
        assert parsed.narrative == [text]
        assert parsed.recovered is False

    def test_empty_text(self, parser):
        """Empty input parses to nothing."""
        parsed = parser.parse("")
        assert parsed.artifacts == []
        assert parsed.narrative == [""]

    def test_blocks_in_order(self, parser):
        """M fences give M artifacts indexed by appearance."""
        text = (
            "First:\n"
            "```python\nprint(1)\n```\n"
            "Second:\n"
            "```js\nconsole.log(2)\n```\n"
            "Third:\n"
            "```\nplain\n```\n"
        )

        parsed = parser.parse(text)

        assert [a.order_index for a in parsed.artifacts] == [0, 1, 2]
        assert [a.language for a in parsed.artifacts] == ["python", "js", None]
        assert parsed.artifacts[0].content == "print(1)\n"
        assert parsed.artifacts[1].content == "console.log(2)\n"
        assert parsed.artifacts[2].content == "plain\n"

    def test_narrative_between_blocks(self, parser):
        """Prose is kept positionally around the artifacts."""
        text = "Intro text.\n```ts\nconst a = 1;\n```\nMiddle.\n```ts\nconst b = 2;\n```\nOutro."

        parsed = parser.parse(text)

        assert parsed.narrative == ["Intro text.", "Middle.", "Outro."]
        assert len(parsed.narrative) == len(parsed.artifacts) + 1

    def test_tilde_fences(self, parser):
        """Tilde fences work like backtick fences."""
        parsed = parser.parse("~~~sql\nSELECT 1;\n~~~\n")

        assert len(parsed.artifacts) == 1
        assert parsed.artifacts[0].language == "sql"
        assert parsed.artifacts[0].content == "SELECT 1;\n"

    def test_closing_fence_must_match_character(self, parser):
        """A tilde line does not close a backtick block."""
        parsed = parser.parse("```md\n~~~\nstill inside\n```\n")

        assert len(parsed.artifacts) == 1
        assert parsed.artifacts[0].content == "~~~\nstill inside\n"

    def test_longer_opener_needs_longer_closer(self, parser):
        """A 4-backtick block can contain 3-backtick lines."""
        text = "````md\n```js\nx()\n```\n````\n"

        parsed = parser.parse(text)

        assert len(parsed.artifacts) == 1
        assert parsed.artifacts[0].content == "```js\nx()\n```\n"

    def test_fence_with_language_is_not_a_closer(self, parser):
        """Inside a block, an opener-looking line is content."""
        parsed = parser.parse("```md\n```python\n```\n")

        assert len(parsed.artifacts) == 1
        assert parsed.artifacts[0].content == "```python\n"

    def test_indented_fence(self, parser):
        """Up to three spaces of indentation are allowed."""
        parsed = parser.parse("   ```go\n   package main\n   ```\n")

        assert len(parsed.artifacts) == 1
        assert parsed.artifacts[0].language == "go"

    def test_four_space_indent_is_not_a_fence(self, parser):
        """Four spaces of indentation is prose, not a fence."""
        parsed = parser.parse("    ```go\n    code\n    ```\n")

        assert parsed.artifacts == []

    def test_crlf_line_endings(self, parser):
        """Windows line endings are handled and kept in content."""
        parsed = parser.parse("```py\r\nx = 1\r\n```\r\n")

        assert len(parsed.artifacts) == 1
        assert parsed.artifacts[0].content == "x = 1\r\n"


class TestUnterminatedFence:
    """Tests for best-effort recovery."""

    def test_unterminated_block_is_closed(self, parser):
        """A truncated response still yields its last artifact."""
        text = "Here you go:\n```ts\nexport function a() {\n  return 1;"

        parsed = parser.parse(text)

        assert parsed.recovered is True
        assert len(parsed.artifacts) == 1
        assert parsed.artifacts[0].content == "export function a() {\n  return 1;"
        assert parsed.narrative == ["Here you go:", ""]

    def test_unterminated_after_complete_block(self, parser):
        """Earlier complete blocks are unaffected by a truncated last block."""
        text = "```a\none\n```\n```b\ntwo"

        parsed = parser.parse(text)

        assert [a.order_index for a in parsed.artifacts] == [0, 1]
        assert parsed.artifacts[0].content == "one\n"
        assert parsed.artifacts[1].content == "two"
        assert parsed.recovered is True

    def test_recovery_is_logged(self, parser, caplog):
        """Recovery is logged as a quality signal."""
        with caplog.at_level(logging.WARNING):
            parser.parse("```py\nx = 1\n")

        assert "ParseRecovered" in caplog.text


class TestFilenameRecovery:
    """Tests for filename annotations."""

    @pytest.mark.parametrize(
        "prose_line",
        [
            "**a.ts**",
            "`a.ts`",
            "File: a.ts",
            "**File:** a.ts",
            "filename: `a.ts`",
            "### a.ts",
            "a.ts:",
            "Create `a.ts`:",
        ],
    )
    def test_prose_line_before_fence(self, parser, prose_line):
        """A recognized annotation line names the following block."""
        parsed = parser.parse(f"{prose_line}\n```ts\nexport const a = 1;\n```\n")

        assert parsed.artifacts[0].filename == "a.ts"

    @pytest.mark.parametrize(
        "info",
        ["ts a.ts", "ts:a.ts", 'ts title="a.ts"', "ts filename=a.ts", "a.ts"],
    )
    def test_info_string(self, parser, info):
        """Filenames in the fence info string are recognized."""
        parsed = parser.parse(f"```{info}\nexport const a = 1;\n```\n")

        assert parsed.artifacts[0].filename == "a.ts"

    def test_info_string_language(self, parser):
        """The language tag survives a filename in the info string."""
        parsed = parser.parse("```ts:src/a.ts\nx\n```\n")

        assert parsed.artifacts[0].language == "ts"
        assert parsed.artifacts[0].filename == "src/a.ts"

    @pytest.mark.parametrize(
        "header,filename",
        [
            ("// src/a.ts", "src/a.ts"),
            ("# file: app.py", "app.py"),
            ("-- schema.sql", "schema.sql"),
            ("/* styles.css */", "styles.css"),
            ("<!-- index.html -->", "index.html"),
        ],
    )
    def test_comment_header_inside_block(self, parser, header, filename):
        """A comment header on the first line names the block."""
        parsed = parser.parse(f"```\n{header}\nbody\n```\n")

        artifact = parsed.artifacts[0]
        assert artifact.filename == filename
        # Content is kept byte-for-byte, header included
        assert artifact.content == f"{header}\nbody\n"

    @pytest.mark.parametrize(
        "path",
        [
            "src/handlers/get-item.v2.ts",
            ".dev.vars",
            ".env",
            ".gitignore",
            "./.env.local",
            "src/pages/[id].tsx",
            "src/pages/[...slug].tsx",
            "src/routes/+page.svelte",
            "app/routes/posts.$id.tsx",
            "app/(auth)/page.tsx",
            "packages/@scope/lib/index.ts",
            "src/App.js",
            "next.config.js",
            "Dockerfile",
        ],
    )
    @pytest.mark.parametrize("template", ["**{}**", "`{}`", "File: {}", "### {}", "{}:"])
    def test_paths_recovered_byte_for_byte(self, parser, path, template):
        """Dotfiles, route segments and nested paths survive unchanged."""
        parsed = parser.parse(template.format(path) + "\n```ts\nx\n```\n")

        assert parsed.artifacts[0].filename == path

    @pytest.mark.parametrize("path", [".env", "src/pages/[id].tsx", "app/(auth)/page.tsx"])
    def test_route_paths_in_comment_header(self, parser, path):
        """Comment headers accept the same paths as prose annotations."""
        parsed = parser.parse(f"```\n// {path}\nx\n```\n")

        assert parsed.artifacts[0].filename == path

    @pytest.mark.parametrize(
        "prose_line",
        [
            "**Next.js**",
            "### Node.js",
            "`Vue.js`:",
            "**Socket.io**",
            "**three.js**",
            "**ASP.NET**",
            "**Version 1.2**",
            "**v1.2**",
            "Call config.get(key).value:",
        ],
    )
    def test_product_names_are_not_filenames(self, parser, prose_line):
        """Words that only look like files do not name the block."""
        parsed = parser.parse(f"{prose_line}\n```js\nconsole.log(1)\n```\n")

        assert parsed.artifacts[0].filename is None

    def test_product_name_comment_is_not_a_filename(self, parser):
        """A comment naming a framework is not a file header."""
        parsed = parser.parse("```js\n// Next.js\nexport default {}\n```\n")

        assert parsed.artifacts[0].filename is None

    def test_no_annotation_leaves_filename_unset(self, parser):
        """Filenames are never invented."""
        parsed = parser.parse("Here is an example:\n```ts\nconst a = 1;\n```\n")

        assert parsed.artifacts[0].filename is None

    def test_annotation_must_be_last_prose_line(self, parser):
        """An annotation followed by other prose does not apply."""
        parsed = parser.parse("**a.ts**\nSome explanation.\n```ts\nx\n```\n")

        assert parsed.artifacts[0].filename is None

    def test_info_string_beats_prose(self, parser):
        """The info string takes precedence over the prose line."""
        parsed = parser.parse("**b.ts**\n```ts a.ts\nx\n```\n")

        assert parsed.artifacts[0].filename == "a.ts"

    def test_prose_beats_comment_header(self, parser):
        """The prose line takes precedence over a comment header."""
        parsed = parser.parse("**a.ts**\n```ts\n// other.ts\nx\n```\n")

        assert parsed.artifacts[0].filename == "a.ts"

    def test_two_named_files(self, parser):
        """Each block gets its own annotation."""
        text = (
            "**a.ts**\n```ts\nexport const a = 1;\n```\n\n"
            "**b.ts**\n```ts\nexport const b = 2;\n```\n"
        )

        parsed = parser.parse(text)

        assert [a.filename for a in parsed.artifacts] == ["a.ts", "b.ts"]
        assert [a.filename for a in parsed.named_artifacts] == ["a.ts", "b.ts"]

    def test_annotation_line_kept_in_narrative(self, parser):
        """Annotation lines stay in the narrative."""
        parsed = parser.parse("**a.ts**\n```ts\nx\n```\n")

        assert parsed.narrative[0] == "**a.ts**"
