# =============================================================================
# SpeechBubble Bot Client -- Text Normalizer
# =============================================================================
#
# Chat bodies arrive as HTML. Bots mostly want plain text, so each incoming
# message gets a ``text`` rendition next to its ``content``.
# =============================================================================

from __future__ import annotations

import re

_EMOJI_IMG = re.compile(r'<img[^>]*?data-emoji="([\w\-+]+)"[^>]+>')
_BLOCK_END = re.compile(r"<(/p|/div|/h\d|br)\w?/?>", re.IGNORECASE)
_ANY_TAG = re.compile(r"<[A-Za-z/][^<>]*>")
_BLANK_RUN = re.compile(r"\n{3,}")

# Order matters: &amp; must be decoded last so "&amp;lt;" stays "&lt;".
_ENTITIES = (
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&apos;", "'"),
    ("&nbsp;", " "),
    ("&amp;", "&"),
)


def decode_entities(text: str | None) -> str:
    """Decode the XML entities the chat server emits."""
    if text is None:
        return ""
    for entity, char in _ENTITIES:
        text = text.replace(entity, char)
    return text


def html_to_text(html: str | None, decode_emoji: bool = True) -> str:
    """Convert a message body to plain text.

    Emoji images become ``:name:``, block-closing tags become newlines,
    all other tags are stripped and runs of blank lines are collapsed.
    """
    text = "" if html is None else str(html)
    if decode_emoji:
        text = _EMOJI_IMG.sub(r":\1:", text)
    text = _BLOCK_END.sub("\n", text)
    text = _ANY_TAG.sub("", text)
    text = _BLANK_RUN.sub("\n\n", text)
    return decode_entities(text).strip()
