# services/crawler/text_sanitizer.py
"""
Turns an HTML fragment (an element's inner HTML) into one line of plain text.
"""

import re

from bs4 import BeautifulSoup

# Inline decoration the article markup wraps around words and numbers.
# Same line only and non-greedy, so each wrapper is unwrapped separately.
_SPAN_RE = re.compile(r"<span[^>]*>(.*?)</span>", re.IGNORECASE)
_SMALL_RE = re.compile(r"<small[^>]*>(.*?)</small>", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    """Collapse every whitespace run to one space and trim."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def unwrap_inline(fragment: str) -> str:
    fragment = _SPAN_RE.sub(r"\1", fragment)
    return _SMALL_RE.sub(r"\1", fragment)


def clean(fragment: str) -> str:
    """
    Return the text of ``fragment`` with tags stripped, entities decoded and
    whitespace collapsed.  An empty string means the fragment held no text.
    """
    if not fragment:
        return ""
    soup = BeautifulSoup(unwrap_inline(fragment), "html.parser")
    return collapse_whitespace(soup.get_text())
