"""Tests for the content structure parser."""

from linkgraph.services.structure_parser import (
    ContentStructureParser,
    count_links,
    count_words,
    extract_links,
    section_importance,
)


def words(n, word="word"):
    return " ".join([word] * n)


class TestParseStructure:
    """Tests for ContentStructureParser.parse_structure."""

    def test_document_without_headings(self):
        """Plain text is one level-0 section."""
        parser = ContentStructureParser(words_per_link=50)
        document = parser.parse_structure(f"{words(120)}\n\n{words(30)}")

        assert len(document.sections) == 1
        section = document.sections[0]
        assert section.title == "Main Content"
        assert section.level == 0
        assert [p.word_count for p in section.paragraphs] == [120, 30]
        assert [p.link_capacity for p in section.paragraphs] == [2, 0]
        assert document.word_count == 150

    def test_empty_document(self):
        """An empty body parses to a single empty section."""
        document = ContentStructureParser(words_per_link=50).parse_structure("")
        assert document.word_count == 0
        assert document.paragraphs == []

    def test_headings_and_preface(self):
        """Text before the first heading becomes its own section."""
        text = (
            "Intro line here.\n\n"
            "# Heading One\n\n"
            "First para text.\n\n"
            "Second para.\n\n"
            "## Sub Heading ##\n"
            "Nested body.\n"
        )
        document = ContentStructureParser(words_per_link=50).parse_structure(text)

        assert [(s.title, s.level) for s in document.sections] == [
            ("Section 1", 0),
            ("Heading One", 1),
            ("Sub Heading", 2),
        ]
        assert [p.text for p in document.sections[1].paragraphs] == ["First para text.", "Second para."]
        assert document.sections[2].paragraphs[0].text == "Nested body."

    def test_offsets_point_into_the_document(self):
        """Paragraph offsets slice back to the paragraph text."""
        text = "# Title\n\n  Indented start.\n\nLine one\nline two\n\n\n# Next\nTail"
        document = ContentStructureParser(words_per_link=50).parse_structure(text)

        for paragraph in document.paragraphs:
            assert text[paragraph.start_offset:paragraph.end_offset] == paragraph.text
        assert [p.text for p in document.paragraphs] == [
            "Indented start.",
            "Line one\nline two",
            "Tail",
        ]
        for section in document.sections:
            assert text[section.start_offset:].startswith("#")

    def test_heading_lines_are_not_paragraphs(self):
        """No paragraph contains a heading line."""
        text = "# A\nbody a\n## B\nbody b"
        document = ContentStructureParser(words_per_link=50).parse_structure(text)
        assert all("#" not in p.text for p in document.paragraphs)

    def test_capacity_subtracts_existing_markdown_links(self):
        """Existing links use up capacity."""
        text = f"{words(24)} [link](https://example.com/a)"
        paragraph = ContentStructureParser(words_per_link=10).parse_structure(text).paragraphs[0]

        assert paragraph.word_count == 25
        assert paragraph.existing_link_count == 1
        assert paragraph.link_capacity == 1

    def test_capacity_counts_html_anchors(self):
        """HTML anchors count as links; tags don't count as words."""
        text = f'{words(12)} <a href="https://example.com/">thirteen fourteen</a>'
        paragraph = ContentStructureParser(words_per_link=10).parse_structure(text).paragraphs[0]

        assert paragraph.word_count == 14
        assert paragraph.existing_link_count == 1
        assert paragraph.link_capacity == 0

    def test_capacity_never_negative(self):
        """More links than allowed gives zero, not a negative number."""
        text = "[a](https://e.com/a) [b](https://e.com/b) [c](https://e.com/c)"
        paragraph = ContentStructureParser(words_per_link=10).parse_structure(text).paragraphs[0]
        assert paragraph.link_capacity == 0

    def test_code_fence_is_one_paragraph_without_capacity(self):
        """Fenced code is kept whole and headings inside it are ignored."""
        text = f"Para one words.\n\n```\n# not a heading\n{words(200, 'code')}\n```\n\nAfter code."
        document = ContentStructureParser(words_per_link=10).parse_structure(text)

        assert [s.title for s in document.sections] == ["Main Content"]
        paragraphs = document.paragraphs
        assert len(paragraphs) == 3
        fence = paragraphs[1]
        assert fence.is_code
        assert fence.text.startswith("```") and fence.text.endswith("```")
        assert fence.link_capacity == 0
        assert paragraphs[2].text == "After code."

    def test_words_per_link_from_settings(self, settings):
        """The default words-per-link comes from configuration."""
        parser = ContentStructureParser(settings=settings)
        assert parser.words_per_link == settings.words_per_link

    def test_from_payload(self):
        """Scraped page payloads are parsed from their markdown body."""
        parser = ContentStructureParser(words_per_link=50)
        document = parser.from_payload({"url": "https://example.com/p", "markdown": "# T\n\nBody text"})

        assert document.url == "https://example.com/p"
        assert document.sections[0].title == "T"
        assert document.to_dict()["word_count"] == 2


class TestSectionImportance:
    """Tests for section importance scoring."""

    def test_early_key_section_is_capped(self):
        """Scores never exceed 1.0."""
        assert section_importance("Introduction", 0, 100) == 1.0

    def test_late_plain_section(self):
        """A late, empty, ordinary section gets the base score."""
        assert section_importance("Other", 20000, 0) == 0.5

    def test_earlier_scores_higher(self):
        """Position matters when everything else is equal."""
        assert section_importance("Body", 0, 500) > section_importance("Body", 2000, 500)


class TestExtractLinks:
    """Tests for link extraction."""

    def test_markdown_and_html_links(self):
        """Both syntaxes are found in document order with offsets."""
        content = (
            'See [docs](/docs) and <a href="https://x.example/y">Y site</a>.\n'
            '[top](#top) <a href="javascript:void(0)">js</a>\n'
            '<a href="/second">Second</a>'
        )
        links = extract_links(content, base_url="https://example.com/")

        assert [link.url for link in links] == [
            "https://example.com/docs",
            "https://x.example/y",
            "https://example.com/second",
        ]
        assert [link.kind for link in links] == ["markdown", "html", "html"]
        assert links[0].start_offset == 4
        assert links[1].anchor_text == "Y site"
        assert content[links[1].start_offset:].startswith('<a href="https://x.example/y"')
        assert content[links[2].start_offset:].startswith('<a href="/second"')

    def test_images_are_not_links(self):
        """Markdown images are skipped."""
        assert extract_links("![alt](https://example.com/i.png)") == []

    def test_counters(self):
        """Word and link counters ignore markup."""
        assert count_words("<p>one <b>two</b></p>") == 2
        assert count_links('[a](https://e.com) <a href="https://e.com">b</a>') == 2
