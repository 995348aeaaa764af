"""
HTML Normalizer
Turns HTML mail bodies into readable plain text

Block structure survives as blank lines, emphasis as plain-text sigils
(_italic_, *bold*). All lookup tables are immutable and the patterns are
compiled once at import time.
"""

import re
from types import MappingProxyType


# Upper bound on input processed (characters); anything beyond is dropped
MAX_HTML_SIZE = 10 * 1024 * 1024

SCRIPT_STYLE_PATTERN = re.compile(
    r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL
)
COMMENT_PATTERN = re.compile(r"<!--.*?-->", re.DOTALL)
TAG_PATTERN = re.compile(r"<[^>]*>")
ENTITY_PATTERN = re.compile(r"&[#a-zA-Z0-9]+;")
INLINE_WHITESPACE_PATTERN = re.compile(r"[ \t]+")
EXCESS_NEWLINES_PATTERN = re.compile(r"\n{3,}")

BLOCK_ELEMENTS = MappingProxyType({
    "p": "\n\n",
    "div": "\n",
    "tr": "\n",
    "table": "\n\n",
    "h1": "\n\n",
    "h2": "\n\n",
    "h3": "\n\n",
    "h4": "\n\n",
    "h5": "\n\n",
    "h6": "\n\n",
    "pre": "\n\n",
    "form": "\n\n",
    "ul": "\n\n",
    "ol": "\n\n",
    "li": "\n",
    "article": "\n\n",
    "section": "\n\n",
    "header": "\n\n",
    "footer": "\n\n",
    "address": "\n\n",
    "figure": "\n\n",
    "dl": "\n",
})

# Closing block tags plus <br>, <br/> and <br />
BLOCK_TAG_PATTERN = re.compile(
    r"</(%s)\s*>|<br\s*/?>" % "|".join(sorted(BLOCK_ELEMENTS, key=len, reverse=True)),
    re.IGNORECASE,
)

# Keep table cells, list items and definitions apart
SEPARATORS = (
    (re.compile(r"</t[dh]\s*>", re.IGNORECASE), "  "),
    (re.compile(r"<li\b[^>]*>", re.IGNORECASE), "• "),
    (re.compile(r"</dt\s*>", re.IGNORECASE), ": "),
    (re.compile(r"</(?:dd|caption)\s*>", re.IGNORECASE), "\n"),
    (re.compile(r"<hr\b[^>]*>", re.IGNORECASE), "\n---\n"),
    (re.compile(r"</cite\s*>", re.IGNORECASE), " "),
)

INLINE_MARKERS = (
    (re.compile(r"</?(?:em|i)\b[^>]*>", re.IGNORECASE), "_"),
    (re.compile(r"</?(?:strong|b)\b[^>]*>", re.IGNORECASE), "*"),
)

HTML_ENTITIES = MappingProxyType({
    "&nbsp;": " ",
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": "\"",
    "&apos;": "'",
    "&#39;": "'",
    "&#34;": "\"",
    "&#160;": " ",
    "&cent;": "¢",
    "&pound;": "£",
    "&euro;": "€",
    "&copy;": "©",
    "&reg;": "®",
    "&trade;": "™",
    "&#8216;": "'",
    "&#8217;": "'",
    "&#8220;": "\"",
    "&#8221;": "\"",
    "&#8230;": "...",
    "&bull;": "•",
    "&ndash;": "–",
    "&mdash;": "\u2014",
    "&lsquo;": "'",
    "&rsquo;": "'",
    "&ldquo;": "\"",
    "&rdquo;": "\"",
})


def _replace_block(match: "re.Match") -> str:
    tag = match.group(1)
    if tag is None:
        return "\n"  # <br>
    return BLOCK_ELEMENTS[tag.lower()]


def _replace_entity(match: "re.Match") -> str:
    entity = match.group(0)
    return HTML_ENTITIES.get(entity, entity)


def normalize_text(text: str) -> str:
    """
    Whitespace clean-up shared by HTML and plain-text bodies

    Collapses runs of spaces/tabs inside each line, trims every line,
    limits blank runs to a single empty line and trims the result.
    """
    if not text or not text.strip():
        return ""

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [
        INLINE_WHITESPACE_PATTERN.sub(" ", line.strip())
        for line in text.split("\n")
    ]
    result = "\n".join(lines)
    result = EXCESS_NEWLINES_PATTERN.sub("\n\n", result)
    return result.strip()


def process_html(html: str) -> str:
    """
    Convert HTML markup to plain text

    Steps: drop script/style/comments, turn block tags into line breaks,
    cell/list/rule tags into separators, emphasis tags into _ and *, strip
    the remaining tags, decode the known entities (unknown ones stay
    verbatim) and normalize whitespace.

    Entities are decoded last, so escaped markup such as
    ``&lt;script&gt;`` comes out as a literal ``<script>``. The result is
    plain text; never insert it into an HTML document unescaped.

    Args:
        html: HTML document or fragment

    Returns:
        Plain text, empty for empty or whitespace-only input
    """
    if not html or not html.strip():
        return ""

    if len(html) > MAX_HTML_SIZE:
        html = html[:MAX_HTML_SIZE]

    html = SCRIPT_STYLE_PATTERN.sub("", html)
    html = COMMENT_PATTERN.sub("", html)

    html = BLOCK_TAG_PATTERN.sub(_replace_block, html)

    for pattern, separator in SEPARATORS:
        html = pattern.sub(separator, html)

    for pattern, marker in INLINE_MARKERS:
        html = pattern.sub(marker, html)

    html = TAG_PATTERN.sub("", html)

    html = ENTITY_PATTERN.sub(_replace_entity, html)

    return normalize_text(html)
