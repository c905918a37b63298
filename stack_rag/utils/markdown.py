"""Markdown-to-plain-text helpers used before embedding documentation.

Embedding models score formatting noise (``**``, link targets, code fences)
as content, so build-time indexing strips it first.  Two levels are offered:

- :func:`strip_markdown` keeps list and quote structure, removing only
  inline formatting, code and HTML.
- :func:`extract_markdown_text` also drops front matter, list markers,
  blockquote markers, horizontal rules and HTML entities.
"""

import re

_CODE_FENCE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE = re.compile(r"`[^`]+`")
_HEADING = re.compile(r"^#+\s+", re.MULTILINE)
_BOLD_STAR = re.compile(r"\*\*([^*]+)\*\*")
_ITALIC_STAR = re.compile(r"\*([^*]+)\*")
_BOLD_UNDERSCORE = re.compile(r"__([^_]+)__")
_ITALIC_UNDERSCORE = re.compile(r"(?<!\w)_([^_]+)_(?!\w)")
_STRIKETHROUGH = re.compile(r"~~([^~]+)~~")
# Images must be removed before links, otherwise "![alt](src)" leaves "!alt".
_IMAGE = re.compile(r"!\[([^\]]*)\]\([^)]+\)")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_REFERENCE_LINK = re.compile(r"\[([^\]]+)\]\[[^\]]*\]")
_HTML_TAG = re.compile(r"<[^>]+>")
_HTML_ENTITY = re.compile(r"&[a-z]+;", re.IGNORECASE)
_FRONT_MATTER = re.compile(r"\A---\n[\s\S]*?\n---\n")
_HORIZONTAL_RULE = re.compile(r"^[-*_]{3,}$", re.MULTILINE)
_BLOCKQUOTE = re.compile(r"^>\s+", re.MULTILINE)
_BULLET = re.compile(r"^[ \t]*[-*+]\s+", re.MULTILINE)
_NUMBERED = re.compile(r"^[ \t]*\d+\.\s+", re.MULTILINE)
_EXTRA_NEWLINES = re.compile(r"\n{3,}")
_HSPACE = re.compile(r"[ \t]+")
_LINE_EDGES = re.compile(r"^[ \t]+|[ \t]+$", re.MULTILINE)


def _strip_emphasis(text: str) -> str:
    text = _BOLD_STAR.sub(r"\1", text)
    text = _ITALIC_STAR.sub(r"\1", text)
    text = _BOLD_UNDERSCORE.sub(r"\1", text)
    return _ITALIC_UNDERSCORE.sub(r"\1", text)


def _normalize_whitespace(text: str) -> str:
    text = _EXTRA_NEWLINES.sub("\n\n", text)
    return _HSPACE.sub(" ", text)


def strip_markdown(markdown: str) -> str:
    """Remove markdown formatting while keeping the readable content.

    >>> strip_markdown("# Hello\\n\\nThis is **bold** text with a [link](url).")
    'Hello\\n\\nThis is bold text with a link.'
    """
    text = _CODE_FENCE.sub("", markdown)
    text = _INLINE_CODE.sub("", text)
    text = _HEADING.sub("", text)
    text = _strip_emphasis(text)
    text = _IMAGE.sub("", text)
    text = _LINK.sub(r"\1", text)
    text = _HTML_TAG.sub("", text)
    return _normalize_whitespace(text).strip()


def extract_markdown_text(markdown: str) -> str:
    """Extract only the prose from a markdown document.

    More aggressive than :func:`strip_markdown`: structural markers are
    removed as well, leaving one paragraph of plain text per block.
    """
    text = _FRONT_MATTER.sub("", markdown)
    text = _CODE_FENCE.sub("", text)
    text = _INLINE_CODE.sub("", text)
    text = _HORIZONTAL_RULE.sub("", text)
    text = _BLOCKQUOTE.sub("", text)
    text = _BULLET.sub("", text)
    text = _NUMBERED.sub("", text)
    text = _HEADING.sub("", text)
    text = _strip_emphasis(text)
    text = _STRIKETHROUGH.sub(r"\1", text)
    text = _IMAGE.sub("", text)
    text = _LINK.sub(r"\1", text)
    text = _REFERENCE_LINK.sub(r"\1", text)
    text = _HTML_TAG.sub("", text)
    text = _HTML_ENTITY.sub("", text)
    text = _normalize_whitespace(text)
    text = _LINE_EDGES.sub("", text)
    return text.strip()
