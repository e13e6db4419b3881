"""Tests for link parsing, extraction and link equality."""

from occurrences.links import (
    convert_list_to_links,
    extract_links,
    format_link,
    is_link,
    parse_link,
)
from occurrences.types import Link, link_sequences_equal, links_equal


class TestParseLink:

    def test_wikilink(self):
        link = parse_link("[[Ana]]")
        assert link == Link(kind="wiki", target="Ana", display_text="Ana")

    def test_wikilink_with_section_and_alias(self):
        link = parse_link("[[People/Ana#Contact|Ana K]]")
        assert link.kind == "wiki"
        assert link.target == "People/Ana"
        assert link.section == "Contact"
        assert link.alias == "Ana K"
        assert link.display_text == "Ana K"

    def test_markdown_link(self):
        link = parse_link("[the office](Places/Office.md)")
        assert link.kind == "markdown"
        assert link.target == "Places/Office.md"
        assert link.display_text == "the office"

    def test_uri_in_markdown_link(self):
        link = parse_link("[Ana](obsidian://open?vault=Main&file=People%2FAna)")
        assert link.kind == "uri"
        assert link.target == "People/Ana"
        assert link.vault == "Main"

    def test_bare_uri(self):
        link = parse_link("obsidian://open?file=People%2FAna&vault=Main")
        assert link.kind == "uri"
        assert link.target == "People/Ana"
        assert link.vault == "Main"

    def test_not_a_link(self):
        assert parse_link("just text") is None
        assert parse_link(42) is None
        assert parse_link(None) is None


class TestFormatLink:

    def test_wikilink(self):
        assert format_link(parse_link("[[Ana#Bio|A]]")) == "[[Ana#Bio|A]]"

    def test_markdown(self):
        assert format_link(Link(kind="markdown", target="x.md", display_text="X")) == "[X](x.md)"

    def test_uri(self):
        text = format_link(Link(kind="uri", target="People/Ana", vault="Main", display_text="Ana"))
        assert text == "[Ana](obsidian://open?file=People%2FAna&vault=Main)"


class TestExtractLinks:

    def test_mixed_document(self):
        text = "Met [[Ana]] at [the office](Office.md), then [[Bo]]."
        links = extract_links(text)
        assert [l.target for l in links] == ["Ana", "Bo", "Office.md"]

    def test_is_link(self):
        assert is_link("see [[Ana]]")
        assert not is_link("see Ana")


class TestConvertList:

    def test_drops_non_links(self):
        links = convert_list_to_links(["[[Ana]]", "text", 3, "[[Bo]]"])
        assert [l.target for l in links] == ["Ana", "Bo"]

    def test_non_list(self):
        assert convert_list_to_links("[[Ana]]") == ()
        assert convert_list_to_links(None) == ()


class TestLinkEquality:

    def test_equal_on_kind_target_display(self):
        a = Link(kind="wiki", target="Ana", display_text="Ana", section="x")
        b = Link(kind="wiki", target="Ana", display_text="Ana", section="y")
        assert links_equal(a, b)

    def test_display_text_differs(self):
        a = Link(kind="wiki", target="Ana", display_text="Ana")
        b = Link(kind="wiki", target="Ana", display_text="A")
        assert not links_equal(a, b)

    def test_none_handling(self):
        assert links_equal(None, None)
        assert not links_equal(None, Link(kind="wiki", target="Ana"))

    def test_sequences_are_ordered(self):
        ana = Link(kind="wiki", target="Ana")
        bo = Link(kind="wiki", target="Bo")
        assert link_sequences_equal((ana, bo), (ana, bo))
        assert not link_sequences_equal((ana, bo), (bo, ana))
        assert not link_sequences_equal((ana,), (ana, bo))
