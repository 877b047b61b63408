"""
Reply Drafter

Generates reply drafts from a short user intent and applies free-text edits
to an existing draft. The sign-off block ("{closing}\\n{organization}") is
never generated: residual closings are stripped from the model output and the
canonical block is appended exactly once.
"""

import logging
import re
from typing import List, Optional

from ..ai.claude_client import ClaudeClient
from ..ai.prompts import REPLY_DRAFT_TEMPLATE, REPLY_EDIT_TEMPLATE
from ..ai.summarizer import is_sign_off_line
from ..core.exceptions import GenerationError
from ..utils.text_utils import clean_draft_text


logger = logging.getLogger(__name__)

# Closings are only searched for near the end of the text
SIGN_OFF_SEARCH_LINES = 4

# A signature name under a closing ("Sam", "J. Smith"); no sentence punctuation at the end
NAME_LINE = re.compile(r"^(?:[A-Z][\w'-]*\.? ){0,3}[A-Z][\w'-]*$")


class ReplyDrafter:
    """
    Reply drafting and editing.

    Unlike EmailSummarizer there is no fallback: failures raise
    GenerationError and the caller keeps the previous state.

    Usage:
        drafter = ReplyDrafter(ClaudeClient(config.claude), "Naked Car Studio")
        draft = drafter.draft_reply("yes friday works", "Jane")
        draft = drafter.apply_edit(draft, "mention 3pm")
    """

    def __init__(
        self,
        client: Optional[ClaudeClient],
        organization_name: str,
        closing: str = "Best regards,",
    ):
        self.client = client
        self.organization_name = organization_name.strip()
        self.closing = closing.strip()

    @property
    def sign_off_block(self) -> str:
        return f"{self.closing}\n{self.organization_name}"

    def _generate(self, template, variables) -> str:
        if self.client is None:
            raise GenerationError("Text generation is not configured")
        text = self.client.generate(template, variables)
        if not text:
            raise GenerationError(f"Claude returned an empty {template.name}")
        return text

    def draft_reply(self, intent: str, sender_name: str) -> str:
        """
        Expand a short intent into a full reply addressed to sender_name.

        Raises:
            GenerationError: Generation unavailable or failed
        """
        text = self._generate(
            REPLY_DRAFT_TEMPLATE,
            {
                "intent": intent.strip(),
                "recipient": sender_name or "there",
                "organization": self.organization_name,
            },
        )
        return self.finalize(text)

    def apply_edit(self, draft: str, feedback: str) -> str:
        """
        Revise a draft according to feedback.

        The model sees the draft without its sign-off block.

        Raises:
            GenerationError: Generation unavailable or failed
        """
        text = self._generate(
            REPLY_EDIT_TEMPLATE,
            {"draft": self.strip_sign_off(draft), "feedback": feedback.strip()},
        )
        return self.finalize(text)

    def finalize(self, text: str) -> str:
        """Clean generated text and append the sign-off block once."""
        body = self.strip_sign_off(text)
        if not body:
            return self.sign_off_block
        return f"{body}\n\n{self.sign_off_block}"

    def strip_sign_off(self, text: str) -> str:
        """
        Remove trailing sign-off material from text.

        Trailing organization-name lines are dropped. Walking back from the
        end, a closing line is cut only when nothing but signature names
        follows it; the first line of body text stops the search.
        """
        lines = clean_draft_text(text).split("\n")
        self._drop_trailing(lines)

        tail = [i for i, line in enumerate(lines) if line.strip()][-SIGN_OFF_SEARCH_LINES:]
        for index in reversed(tail):
            if self._is_closing_line(lines[index]):
                del lines[index:]
                break
            if not NAME_LINE.match(lines[index].strip()):
                break

        self._drop_trailing(lines)
        return "\n".join(lines).strip()

    def _drop_trailing(self, lines: List[str]):
        while lines and (not lines[-1].strip() or self._is_organization_line(lines[-1])):
            lines.pop()

    def _is_closing_line(self, line: str) -> bool:
        return line.strip() == self.closing or is_sign_off_line(line)

    def _is_organization_line(self, line: str) -> bool:
        value = line.strip().rstrip(".!,").lower()
        org = self.organization_name.lower()
        return value in (org, f"{org} team", f"the {org} team")
