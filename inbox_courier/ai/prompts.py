"""
Prompt templates for Claude text generation.

Three templates share one rule: the model never writes a sign-off.
The closing block is appended by ReplyDrafter after generation.
"""

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class PromptTemplate:
    """A system prompt plus a str.format user prompt."""

    name: str
    system: str
    user: str
    max_tokens: int

    def render(self, variables: Dict[str, str]) -> str:
        return self.user.format(**variables)

    def render_system(self, variables: Dict[str, str]) -> str:
        return self.system.format(**variables)


NO_SIGN_OFF_RULE = (
    "Do not include any closing or sign-off (no \"Best\", \"Best regards\", \"Regards\", "
    "\"Sincerely\", \"Thanks\", \"Cheers\", \"Take care\") and do not sign with any name "
    "or organization."
)


# ============================================================================
# EMAIL SUMMARY
# ============================================================================

SUMMARY_TEMPLATE = PromptTemplate(
    name="email_summary",
    system="You condense incoming emails into very short chat notifications.",
    user=(
        "Rewrite this email into exactly this format. Output ONLY:\n"
        "1) One line: the greeting only (e.g. \"Dear Anna,\" or \"Hi,\").\n"
        "2) A blank line.\n"
        "3) One or two sentences that summarize the main point of the email.\n"
        f"{NO_SIGN_OFF_RULE}\n\n"
        "Email:\n"
        "{body}"
    ),
    max_tokens=200,
)


# ============================================================================
# REPLY DRAFTING
# ============================================================================

REPLY_DRAFT_TEMPLATE = PromptTemplate(
    name="reply_draft",
    system=(
        "You are a professional email assistant for {organization}. "
        "You turn short notes into polite, professional email replies."
    ),
    user=(
        "The user wants to reply to an email. Convert their short message into a polite, "
        "respectful, professional email.\n\n"
        "Rules:\n"
        "- Start with \"Dear {recipient},\" (comma only at the end of the line, never between "
        "parts of the name). Do not use \"Hi\".\n"
        "- Use a blank line between paragraphs.\n"
        "- Output plain text only.\n"
        "- Keep the tone professional and friendly.\n"
        f"- {NO_SIGN_OFF_RULE} Stop after the last sentence of the body.\n\n"
        "User's message: {intent}"
    ),
    max_tokens=500,
)

REPLY_EDIT_TEMPLATE = PromptTemplate(
    name="reply_edit",
    system="You are a professional email assistant. You revise draft emails on request.",
    user=(
        "The user wants to modify this draft email.\n\n"
        "Current draft:\n"
        "{draft}\n\n"
        "User's edit request: {feedback}\n\n"
        "Apply the changes and output the revised email only, as plain text with a blank line "
        "between paragraphs. Keep the \"Dear ...,\" greeting unless asked to change it.\n"
        f"{NO_SIGN_OFF_RULE} If the current draft ends with a closing or a signature, leave it out."
    ),
    max_tokens=800,
)
