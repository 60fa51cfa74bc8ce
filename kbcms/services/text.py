"""
Text helpers: slugs, excerpts, truncation and search-term highlighting.
"""

import re
from typing import Iterable, Union

from markupsafe import Markup, escape

SLUG_MAX_LENGTH = 100
EXCERPT_LENGTH = 200

_NON_ALNUM = re.compile(r'[^a-z0-9]+')
_TAG = re.compile(r'<[^>]+>')


def slugify(text: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to one hyphen, trim, cap at 100."""
    slug = _NON_ALNUM.sub('-', text.lower())
    slug = slug.strip('-')
    return slug[:SLUG_MAX_LENGTH]


def strip_tags(content: str) -> str:
    return _TAG.sub('', content or '')


def collapse_whitespace(text: str) -> str:
    return ' '.join(text.split())


def plain_text(content: str) -> str:
    """Markup-free, whitespace-normalized text of an HTML fragment."""
    return collapse_whitespace(strip_tags(content))


def truncate_text(text: str, length: int = 150, suffix: str = '...') -> str:
    if len(text) <= length:
        return text
    return text[:length] + suffix


def generate_excerpt(content: str, length: int = EXCERPT_LENGTH) -> str:
    """Excerpt for an article that has none of its own."""
    return truncate_text(plain_text(content), length)


def search_excerpt(content: str, query: str, length: int = EXCERPT_LENGTH) -> str:
    """
    Window of ``length`` characters around the first occurrence of ``query``.

    The window is shifted to whole words and marked with ellipses where it was
    cut. Falls back to a plain truncation when the query does not appear
    verbatim in the text.
    """
    text = plain_text(content)

    if not query:
        return truncate_text(text, length)

    pos = text.lower().find(query.lower())
    if pos == -1:
        return truncate_text(text, length)

    start = max(0, pos - length // 2)
    excerpt = text[start:start + length]

    # Don't start mid-word
    if start > 0:
        space = excerpt.find(' ')
        if space != -1:
            excerpt = excerpt[space + 1:]

    # Don't end mid-word
    if len(text) > start + length:
        last_space = excerpt.rfind(' ')
        if last_space != -1:
            excerpt = excerpt[:last_space] + '...'

    if start > 0:
        excerpt = '...' + excerpt

    return excerpt


def highlight_terms(text: str, terms: Union[str, Iterable[str], None]) -> Markup:
    """Escape ``text`` and wrap case-insensitive matches of ``terms`` in <mark>."""
    text = text or ''
    if isinstance(terms, str):
        terms = terms.split()
    # Longest first so "docker" wins over "do" at the same position
    terms = sorted({term.strip() for term in terms or [] if term.strip()}, key=len, reverse=True)
    if not terms:
        return escape(text)

    pattern = re.compile('|'.join(re.escape(term) for term in terms), re.IGNORECASE)
    pieces = []
    last = 0
    for match in pattern.finditer(text):
        pieces.append(escape(text[last:match.start()]))
        pieces.append(Markup('<mark>%s</mark>') % match.group(0))
        last = match.end()
    pieces.append(escape(text[last:]))
    return Markup('').join(pieces)
