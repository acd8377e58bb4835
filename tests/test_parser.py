"""
Tests for markdown metadata parsing and path helpers.
"""

import pytest


# ============== Tests for parse_frontmatter() ==============

class TestParseFrontmatter:
    """Tests for the parse_frontmatter function."""

    def test_valid_frontmatter(self):
        """Test parsing valid YAML frontmatter."""
        from vault_bridge.utils import parse_frontmatter

        content = """---
title: Test Note
tags:
  - python
---

# Body
"""
        frontmatter, body_start = parse_frontmatter(content)

        assert frontmatter["title"] == "Test Note"
        assert frontmatter["tags"] == ["python"]
        assert content[body_start:] == "\n# Body\n"

    def test_missing_frontmatter(self):
        """Test parsing content without frontmatter."""
        from vault_bridge.utils import parse_frontmatter

        frontmatter, body_start = parse_frontmatter("# Just a heading\n")

        assert frontmatter == {}
        assert body_start == 0

    def test_invalid_yaml_frontmatter(self):
        """Test that invalid YAML yields an empty dict but still skips the block."""
        from vault_bridge.utils import parse_frontmatter

        content = "---\ntitle: [broken\n---\nBody\n"
        frontmatter, body_start = parse_frontmatter(content)

        assert frontmatter == {}
        assert content[body_start:] == "Body\n"


# ============== Tests for path helpers ==============

class TestPathHelpers:
    """Tests for normalize_path, split_subpath and normalize_heading_key."""

    @pytest.mark.parametrize("raw, expected", [
        ("folder/note.md", "folder/note.md"),
        ("/folder//note.md/", "folder/note.md"),
        ("folder\\sub\\note.md", "folder/sub/note.md"),
        ("./folder/./note.md", "folder/note.md"),
        ("", ""),
        ("/", ""),
    ])
    def test_normalize_path(self, raw, expected):
        """Test path normalization."""
        from vault_bridge.utils import normalize_path

        assert normalize_path(raw) == expected

    def test_normalize_path_rejects_traversal(self):
        """Test that .. segments are rejected."""
        from vault_bridge.utils import InvalidArgumentError, normalize_path

        with pytest.raises(InvalidArgumentError):
            normalize_path("notes/../../etc/passwd")

    def test_split_subpath(self):
        """Test splitting link targets and subpaths."""
        from vault_bridge.utils import split_subpath

        assert split_subpath("Note") == ("Note", None)
        assert split_subpath("Note#Heading") == ("Note", "Heading")
        assert split_subpath("Note#^blk") == ("Note", "^blk")
        assert split_subpath("#Heading") == ("", "Heading")
        assert split_subpath("Note#H1#H2") == ("Note", "H1#H2")

    def test_normalize_heading_key(self):
        """Test heading comparison keys."""
        from vault_bridge.utils import normalize_heading_key

        assert normalize_heading_key("Getting Started!") == "getting-started"
        assert normalize_heading_key("Getting%20Started") == "getting-started"
        assert normalize_heading_key("snake_case  words") == "snake-case-words"


# ============== Tests for parse_note() ==============

class TestParseNote:
    """Tests for markdown metadata extraction."""

    def test_headings_with_offsets(self):
        """Test heading text, level and line offsets."""
        from vault_bridge.parser import parse_note

        content = "# Title\n\nText\n\n## Sub Section  \n"
        metadata = parse_note("n.md", content)

        assert [(h.text, h.level) for h in metadata.headings] == [("Title", 1), ("Sub Section", 2)]
        first = metadata.headings[0]
        assert content[first.start:first.end] == "# Title\n"

    def test_frontmatter_not_scanned(self):
        """Test that frontmatter lines are not parsed as headings or links."""
        from vault_bridge.parser import parse_note

        content = "---\ntitle: '# not a heading [[nope]]'\n---\n# Real\n"
        metadata = parse_note("n.md", content)

        assert [h.text for h in metadata.headings] == ["Real"]
        assert metadata.links == []

    def test_links_and_embeds(self):
        """Test wikilinks, markdown links and their embed variants."""
        from vault_bridge.parser import parse_note

        content = "See [[Target#Part|alias]] and ![[Image.png]].\n[md](Other%20Note.md) ![pic](img.png)\n"
        metadata = parse_note("n.md", content)

        assert [r.link for r in metadata.links] == ["Target#Part", "Other Note.md"]
        assert [r.link for r in metadata.embeds] == ["Image.png", "img.png"]
        assert metadata.links[0].display_text == "alias"
        assert metadata.links[0].formatted() == "[alias](Target#Part)"

    def test_external_urls_ignored(self):
        """Test that markdown links with a URL scheme are skipped."""
        from vault_bridge.parser import parse_note

        metadata = parse_note("n.md", "[site](https://example.com) [mail](mailto:a@b.c)\n")

        assert metadata.links == []

    def test_code_is_ignored(self):
        """Test that fenced and inline code do not produce links or headings."""
        from vault_bridge.parser import parse_note

        content = "```\n# not heading\n[[Fenced]]\n```\n\nUse `[[Inline]]` here and [[Real]].\n"
        metadata = parse_note("n.md", content)

        assert metadata.headings == []
        assert [r.link for r in metadata.links] == ["Real"]

    def test_tags(self):
        """Test frontmatter and inline tags, without duplicates."""
        from vault_bridge.parser import parse_note

        content = "---\ntags: [alpha, '#beta']\n---\nText #gamma #alpha and #123 and a#b\n"
        metadata = parse_note("n.md", content)

        assert metadata.tags == ["alpha", "beta", "gamma"]

    def test_frontmatter_tag_string(self):
        """Test a comma separated tag string."""
        from vault_bridge.parser import parse_note

        metadata = parse_note("n.md", "---\ntags: one, two\n---\n")

        assert metadata.tags == ["one", "two"]

    def test_paragraph_block(self):
        """Test that an inline block id spans its paragraph."""
        from vault_bridge.parser import parse_note

        content = "Line one\nline two ^para\n\nNext\n"
        metadata = parse_note("n.md", content)
        span = metadata.blocks["para"]

        assert content[span.start:span.end] == "Line one\nline two ^para"

    def test_list_item_block(self):
        """Test that a block id on a list item spans only that item."""
        from vault_bridge.parser import parse_note

        content = "- item a\n- item b ^Item\n- item c\n"
        metadata = parse_note("n.md", content)
        span = metadata.blocks["item"]

        assert content[span.start:span.end] == "- item b ^Item"

    def test_standalone_block_id(self):
        """Test that an id on its own line refers to the preceding block."""
        from vault_bridge.parser import parse_note

        content = "Para one\nline two\n\n^para\n"
        metadata = parse_note("n.md", content)
        span = metadata.blocks["para"]

        assert content[span.start:span.end] == "Para one\nline two"
