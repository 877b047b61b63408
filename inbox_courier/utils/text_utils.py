"""
Text processing utilities for Inbox Courier.

Email body normalization (for summaries and the full-email view) and the
small HTML helpers used for Telegram messages and reply bodies.
"""

import re


TAG_PATTERN = re.compile(r"<[^>]*>")

HTML_ENTITIES = {
    "&nbsp;": " ",
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&apos;": "'",
}
ENTITY_PATTERN = re.compile("|".join(re.escape(entity) for entity in HTML_ENTITIES))

# Whitespace other than newline
HORIZONTAL_WS = re.compile(r"[^\S\n]+")
EXCESS_NEWLINES = re.compile(r"\n{3,}")


def strip_tags(content: str) -> str:
    """Remove markup tags (simple pattern match, not an HTML parser)."""
    return TAG_PATTERN.sub("", content)


def decode_entities(content: str) -> str:
    """
    Decode the fixed table of common HTML entities in a single pass.

    Example:
        decode_entities("Tom &amp; Jerry&nbsp;&lt;3")
        -> "Tom & Jerry <3"
    """
    return ENTITY_PATTERN.sub(lambda m: HTML_ENTITIES[m.group(0)], content)


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _prepare_body(content: str, content_type: str) -> str:
    if not content:
        return ""
    if (content_type or "").lower() == "html":
        content = strip_tags(content)
    return normalize_line_endings(decode_entities(content))


def _clean_lines(text: str):
    return [HORIZONTAL_WS.sub(" ", line).strip() for line in text.split("\n")]


def normalize_email_body(content: str, content_type: str = "text") -> str:
    """
    Convert a raw message body into compact plain text.

    Tags are stripped (HTML only), entities decoded, line endings normalized,
    whitespace runs collapsed, and empty lines dropped.

    Entities are decoded once, so the result is stable under repeated calls
    except for double-escaped input: "&amp;lt;" becomes "&lt;" here and "<"
    on a second call.

    Args:
        content: Raw body from Graph
        content_type: "html" or "text"

    Returns:
        One non-empty, trimmed line per line of content
    """
    lines = _clean_lines(_prepare_body(content, content_type))
    return "\n".join(line for line in lines if line)


def format_full_email_body(content: str, content_type: str = "text") -> str:
    """
    Like normalize_email_body, but keeps paragraph breaks.

    Runs of blank lines collapse to exactly one blank line.
    """
    text = "\n".join(_clean_lines(_prepare_body(content, content_type)))
    return EXCESS_NEWLINES.sub("\n\n", text).strip()


def escape_html(text: str) -> str:
    """Escape text for Telegram's HTML parse mode."""
    if not text:
        return ""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def clean_draft_text(text: str) -> str:
    """Normalize line endings and collapse 3+ newlines in generated text."""
    if not text:
        return ""
    return EXCESS_NEWLINES.sub("\n\n", normalize_line_endings(text)).strip()


def plain_text_to_html(plain_text: str) -> str:
    """
    Render plain text as HTML paragraphs for an email body.

    Blank lines separate paragraphs; single newlines become <br>.

    Example:
        plain_text_to_html("Dear Jane,\\n\\nSee you Friday.")
        -> "<p>Dear Jane,</p>\\n<p>See you Friday.</p>"
    """
    trimmed = (plain_text or "").strip()
    if not trimmed:
        return "<p></p>"
    paragraphs = [p.strip() for p in re.split(r"\n\n+", trimmed)]
    return "\n".join(
        "<p>" + escape_html(p).replace("\n", "<br>") + "</p>" for p in paragraphs if p
    )


def truncate_html_text(text: str, max_length: int, suffix: str = "... (truncated)") -> str:
    """
    Truncate HTML-escaped text to max_length (including suffix).

    The cut never lands inside an entity (&amp;) or a tag.

    Args:
        text: Escaped text, possibly containing simple tags
        max_length: Maximum length of the result
        suffix: Marker appended when truncated

    Returns:
        Text unchanged if it fits, otherwise the truncated text plus suffix
    """
    if len(text) <= max_length:
        return text

    cut = text[: max(max_length - len(suffix), 0)]

    amp = cut.rfind("&")
    if amp != -1 and cut.find(";", amp) == -1:
        cut = cut[:amp]

    lt = cut.rfind("<")
    if lt != -1 and cut.find(">", lt) == -1:
        cut = cut[:lt]

    return cut + suffix
