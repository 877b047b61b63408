"""
Email Summarizer

Turns a normalized email body into the short greeting + synopsis block shown
in Telegram notifications. Uses Claude when available and falls back to a
deterministic heuristic otherwise.
"""

import logging
import re
from typing import List, Optional

from ..ai.claude_client import ClaudeClient
from ..ai.prompts import SUMMARY_TEMPLATE
from ..core.exceptions import GenerationError


logger = logging.getLogger(__name__)

NO_CONTENT_PLACEHOLDER = "(No content)"

CLOSING_PHRASES = (
    r"best(?: regards| wishes)?",
    r"kind regards",
    r"warm regards",
    r"regards",
    r"sincerely(?: yours)?",
    r"yours sincerely",
    r"thanks(?: so much| again| in advance)?",
    r"thank you(?: so much| again)?",
    r"many thanks",
    r"cheers",
    r"take care",
    r"all the best",
)

# A whole line holding only a closing, optionally followed by ", Name"
SIGN_OFF_LINE = re.compile(
    r"^(?i:" + "|".join(CLOSING_PHRASES) + r")\s*(?:[,.!]+\s*(?:[A-Z][\w.'-]*\s*){0,3})?$"
)


def is_sign_off_line(line: str) -> bool:
    return bool(SIGN_OFF_LINE.match(line.strip()))


def strip_sign_off(lines: List[str]) -> List[str]:
    """Drop the first sign-off line and everything after it."""
    for index, line in enumerate(lines):
        if is_sign_off_line(line):
            return lines[:index]
    return lines


class EmailSummarizer:
    """
    Produces notification summaries from normalized email text.

    Decision order:
    - empty body -> "(No content)"
    - short single line -> returned unchanged (no API call)
    - otherwise Claude, falling back to fallback_summary() on any failure

    Usage:
        summarizer = EmailSummarizer(ClaudeClient(config.claude))
        block = summarizer.summarize(normalize_email_body(content, "html"))
    """

    def __init__(
        self,
        client: Optional[ClaudeClient] = None,
        generation_enabled: bool = True,
        short_body_max_chars: int = 40,
        fallback_snippet_chars: int = 150,
    ):
        self.client = client
        self.generation_enabled = generation_enabled
        self.short_body_max_chars = short_body_max_chars
        self.fallback_snippet_chars = fallback_snippet_chars

    def summarize(self, normalized_body: str) -> str:
        """
        Summarize a normalized body.

        Args:
            normalized_body: Output of normalize_email_body()

        Returns:
            Summary block (never empty)
        """
        if not normalized_body or not normalized_body.strip():
            return NO_CONTENT_PLACEHOLDER

        if len(normalized_body) <= self.short_body_max_chars and "\n" not in normalized_body:
            return normalized_body

        if self.generation_enabled and self.client is not None:
            try:
                summary = self.client.generate(SUMMARY_TEMPLATE, {"body": normalized_body})
                if summary:
                    return summary
                logger.warning("Claude returned an empty summary, using fallback")
            except GenerationError as e:
                logger.warning(f"Summary generation failed, using fallback: {e}")

        return self.fallback_summary(normalized_body)

    def fallback_summary(self, normalized_body: str) -> str:
        """
        Heuristic summary: first line as greeting, then a snippet of the rest.

        Example:
            "Hi,\\nCan we meet Friday?\\nBest,\\nJane"
            -> "Hi,\\n\\nCan we meet Friday?"
        """
        lines = [line.strip() for line in normalized_body.split("\n") if line.strip()]
        if not lines:
            return NO_CONTENT_PLACEHOLDER

        greeting = lines[0]
        rest = " ".join(strip_sign_off(lines[1:]))
        snippet = rest[: self.fallback_snippet_chars].strip()

        if greeting and snippet:
            return f"{greeting}\n\n{snippet}"
        return snippet or greeting or NO_CONTENT_PLACEHOLDER
