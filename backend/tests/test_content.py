"""
HardbanRecords Publishing API - Content Helper Tests
=====================================================
"""

import pytest

from hardban_publishing.mappers.content import (
    calculate_reading_time,
    calculate_word_count,
    extract_excerpt,
    to_epub_format,
    to_markdown,
    to_plain_text,
    transform_content_for_format,
)


class TestConversions:

    def test_plain_text_strips_tags_and_entities(self):
        html = "<p>Fish&nbsp;&amp;&nbsp;chips &lt;3 &quot;yum&quot;</p>"
        assert to_plain_text(html) == 'Fish & chips <3 "yum"'

    def test_markdown(self):
        html = "<h1>Title</h1><h2>Part</h2><p>Some <em>soft</em> and <strong>bold</strong> text<br/>next</p>"
        assert to_markdown(html) == "# Title\n\n## Part\n\nSome *soft* and **bold** text\nnext"

    def test_plain_text_keeps_block_boundaries(self):
        html = "<h2>Three</h2><p>One</p><p>Two<br>lines</p><ul><li>a</li><li>b</li></ul>"
        assert to_plain_text(html) == "Three\nOne\nTwo\nlines\na\nb"

    def test_plain_text_decodes_numeric_and_named_entities(self):
        assert to_plain_text("It&#39;s salt &amp; pepper&hellip;") == "It's salt & pepper\u2026"

    def test_markdown_lists_and_entities(self):
        html = "<p>Tom &amp; Jerry</p><ul><li>one</li><li><b>two</b></li></ul>"
        assert to_markdown(html) == "Tom & Jerry\n\n- one\n- **two**"

    def test_epub_escaping(self):
        assert to_epub_format("Tom & \"Jerry\" <3 'ok'") == "Tom &amp; &quot;Jerry&quot; &lt;3 &#x27;ok&#x27;"

    @pytest.mark.parametrize(
        "fmt,expected",
        [
            ("plain", "Hi"),
            ("markdown", "**Hi**"),
            ("epub", "&lt;strong&gt;Hi&lt;/strong&gt;"),
            ("pdf", "<strong>Hi</strong>"),
            ("html", "<strong>Hi</strong>"),
            ("unknown", "<strong>Hi</strong>"),
        ],
    )
    def test_transform_for_format(self, fmt, expected):
        assert transform_content_for_format("<strong>Hi</strong>", fmt) == expected

    def test_empty_content(self):
        assert transform_content_for_format("", "plain") == ""
        assert to_markdown(None) == ""


class TestStatistics:

    def test_word_count(self):
        assert calculate_word_count("<p>one  two</p>\n<p>three</p>") == 3

    def test_word_count_across_blocks(self):
        """Adjacent block elements are separate words."""
        assert calculate_word_count("<p>One</p><p>Two</p><h2>Three</h2>") == 3
        assert calculate_word_count("<p>a<br/>b</p><div>c</div>") == 3

    def test_word_count_of_non_text(self):
        assert calculate_word_count(None) == 0
        assert calculate_word_count(42) == 0

    @pytest.mark.parametrize("words,minutes", [(0, 0), (-5, 0), (1, 1), (200, 1), (201, 2)])
    def test_reading_time(self, words, minutes):
        assert calculate_reading_time(words) == minutes

    def test_reading_time_custom_speed(self):
        assert calculate_reading_time(300, words_per_minute=100) == 3


class TestExcerpt:

    def test_short_text_returned_whole(self):
        assert extract_excerpt("<p>Short one.</p>") == "Short one."

    def test_cuts_at_late_sentence_end(self):
        text = "A" * 80 + ". " + "b" * 40
        assert extract_excerpt(text, max_length=100) == "A" * 80 + "."

    def test_cuts_at_word_boundary_otherwise(self):
        text = "Early. " + "word " * 40
        excerpt = extract_excerpt(text, max_length=50)
        assert excerpt.endswith("...")
        assert len(excerpt) <= 53
        assert not excerpt[:-3].endswith(" ")
