"""
Content preprocessing for cleaning text before embedding.

Strips HTML and Markdown syntax (only when detected) and normalizes
whitespace so that embeddings are computed over plain prose.
"""

from __future__ import annotations

import re
from typing import List, Pattern

from bs4 import BeautifulSoup


_HTML_PATTERN = re.compile(r"<[a-z][\s\S]*>", re.IGNORECASE)

_MARKDOWN_PATTERNS: List[Pattern[str]] = [
    re.compile(r"^#{1,6}\s", re.MULTILINE),   # headers
    re.compile(r"\*\*[^*]+\*\*"),             # bold
    re.compile(r"\*[^*]+\*"),                 # italic
    re.compile(r"__[^_]+__"),                 # bold
    re.compile(r"_[^_]+_"),                   # italic
    re.compile(r"\[.+\]\(.+\)"),              # links
    re.compile(r"^[-*+]\s", re.MULTILINE),    # unordered lists
    re.compile(r"^\d+\.\s", re.MULTILINE),    # ordered lists
    re.compile(r"^>\s", re.MULTILINE),        # blockquotes
    re.compile(r"`[^`]+`"),                   # inline code
    re.compile(r"```[\s\S]*?```"),            # code blocks
    re.compile(r"^\|.+\|$", re.MULTILINE),    # tables
]

# Applied in order by _strip_markdown
_MARKDOWN_SUBSTITUTIONS = [
    (re.compile(r"```\w*\n?"), ""),
    (re.compile(r"^[-*_]{3,}\s*$", re.MULTILINE), ""),
    (re.compile(r"!\[([^\]]*)\]\([^)]*\)"), r"\1"),
    (re.compile(r"\[([^\]]+)\]\([^)]*\)"), r"\1"),
    (re.compile(r"^#{1,6}\s+", re.MULTILINE), ""),
    (re.compile(r"^\s*>\s?", re.MULTILINE), ""),
    (re.compile(r"^\s*[-*+]\s+", re.MULTILINE), ""),
    (re.compile(r"^\s*\d+\.\s+", re.MULTILINE), ""),
    (re.compile(r"(\*\*|__)(.+?)\1"), r"\2"),
    (re.compile(r"(\*|_)(.+?)\1"), r"\2"),
    (re.compile(r"~~(.+?)~~"), r"\1"),
    (re.compile(r"`([^`]+)`"), r"\1"),
]


def contains_html(content: str) -> bool:
    return bool(_HTML_PATTERN.search(content))


def contains_markdown(content: str) -> bool:
    return any(pattern.search(content) for pattern in _MARKDOWN_PATTERNS)


def needs_preprocessing(content: str) -> bool:
    """Return True if content contains HTML or Markdown."""
    return contains_html(content) or contains_markdown(content)


def _strip_html(content: str) -> str:
    if not contains_html(content):
        return content

    soup = BeautifulSoup(content, "html.parser")

    # Drop non-prose elements entirely; link text survives without its href
    for element in soup(["script", "style", "img"]):
        element.decompose()

    return soup.get_text()


def _strip_markdown(content: str) -> str:
    if not contains_markdown(content):
        return content

    result = content
    for pattern, replacement in _MARKDOWN_SUBSTITUTIONS:
        result = pattern.sub(replacement, result)
    return result


def _normalize_whitespace(content: str) -> str:
    result = re.sub(r"\n{3,}", "\n\n", content)
    result = re.sub(r"[ \t]+", " ", result)
    result = "\n".join(line.strip() for line in result.split("\n"))
    return result.strip()


def preprocess_content(
    content: str,
    strip_html: bool = True,
    strip_markdown: bool = True,
    normalize_whitespace: bool = True,
) -> str:
    """
    Preprocess content for embedding.

    Parameters
    ----------
    content : str
        The raw content to preprocess.

    strip_html, strip_markdown, normalize_whitespace : bool
        Toggle each cleaning step.

    Returns
    -------
    str
        Cleaned plain text ready for chunking and embedding.
    """
    if not content or not isinstance(content, str):
        return ""

    result = content
    if strip_html:
        result = _strip_html(result)
    if strip_markdown:
        result = _strip_markdown(result)
    if normalize_whitespace:
        result = _normalize_whitespace(result)
    return result
