"""
Chapter content helpers: format conversion and reading statistics.

Chapter HTML is parsed with BeautifulSoup (`html.parser`), so entities are
decoded and block elements (paragraphs, headings, list items, line breaks)
keep their boundaries in plain text and markdown output.
"""

import logging
import math
import re
from typing import Any

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

logger = logging.getLogger(__name__)

DEFAULT_WORDS_PER_MINUTE = 200
DEFAULT_EXCERPT_LENGTH = 300

BLOCK_TAGS = (
    "p", "div", "section", "article", "blockquote", "pre",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "li", "ul", "ol", "tr", "table",
)
_HEADING_LEVELS = {f"h{level}": level for level in range(1, 7)}
_INLINE_MARKS = {"strong": "**", "b": "**", "em": "*", "i": "*"}
_EPUB_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#x27;"),
)


def _parse(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def to_plain_text(html: str) -> str:
    """One line per block element, whitespace collapsed inside each line."""
    if not html:
        return ""
    soup = _parse(html)
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(BLOCK_TAGS):
        block.insert_after("\n")

    lines = (" ".join(line.split()) for line in soup.get_text().splitlines())
    return "\n".join(line for line in lines if line)


def _render_markdown(node) -> str:
    if isinstance(node, Comment):
        return ""
    if isinstance(node, NavigableString):
        return str(node)
    if not isinstance(node, Tag):
        return ""

    inner = "".join(_render_markdown(child) for child in node.children)
    name = node.name
    if name in _HEADING_LEVELS:
        return "#" * _HEADING_LEVELS[name] + " " + inner.strip() + "\n\n"
    if name in _INLINE_MARKS:
        mark = _INLINE_MARKS[name]
        return f"{mark}{inner}{mark}"
    if name == "br":
        return "\n"
    if name == "li":
        return "- " + inner.strip() + "\n"
    if name in ("p", "blockquote", "ul", "ol", "div"):
        return inner.strip() + "\n\n"
    return inner


def to_markdown(html: str) -> str:
    if not html:
        return ""
    text = _render_markdown(_parse(html))
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def to_epub_format(content: str) -> str:
    if not content:
        return ""
    # & first, so the entities added below are not escaped twice
    for char, entity in _EPUB_ESCAPES:
        content = content.replace(char, entity)
    return content


def to_pdf_format(content: str) -> str:
    # PDF rendering happens downstream; content is passed through unchanged
    return content or ""


_CONVERTERS = {
    "plain": to_plain_text,
    "markdown": to_markdown,
    "epub": to_epub_format,
    "pdf": to_pdf_format,
}


def transform_content_for_format(content: str, fmt: str = "html") -> str:
    """html and unknown formats return the content unchanged."""
    if not content:
        return ""
    converter = _CONVERTERS.get((fmt or "html").lower())
    if converter is None:
        return content
    try:
        return converter(content)
    except (TypeError, AttributeError) as e:
        logger.error("Error transforming content to %s: %s", fmt, str(e))
        return content


def calculate_word_count(content: Any) -> int:
    if not content or not isinstance(content, str):
        return 0
    return len(to_plain_text(content).split())


def calculate_reading_time(word_count: Any, words_per_minute: int = DEFAULT_WORDS_PER_MINUTE) -> int:
    """Minutes, rounded up."""
    if not word_count or word_count <= 0:
        return 0
    return math.ceil(word_count / words_per_minute)


def extract_excerpt(content: str, max_length: int = DEFAULT_EXCERPT_LENGTH) -> str:
    """
    Plain-text excerpt of at most `max_length` characters (plus "...").

    Prefers ending on the last sentence terminator when it falls in the final
    30% of the budget; otherwise cuts at the last space and appends "...".
    """
    if not content:
        return ""
    text = to_plain_text(content)
    if len(text) <= max_length:
        return text

    truncated = text[:max_length]
    sentence_end = max(truncated.rfind("."), truncated.rfind("!"), truncated.rfind("?"))
    if sentence_end > max_length * 0.7:
        return truncated[: sentence_end + 1]

    last_space = truncated.rfind(" ")
    if last_space > 0:
        return truncated[:last_space] + "..."
    return truncated + "..."
