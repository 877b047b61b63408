"""
Claude API Client

Wrapper around Anthropic's Python SDK for the summary, reply-draft and
reply-edit generations. Failures surface as GenerationError; callers decide
whether a fallback exists.
"""

import logging
from datetime import datetime
from typing import Dict, Optional
from anthropic import Anthropic, APIError

from ..core.config import ClaudeConfig
from ..core.exceptions import GenerationError
from .prompts import PromptTemplate


logger = logging.getLogger(__name__)


class ClaudeClient:
    """
    Claude API client.

    Usage:
        client = ClaudeClient(config.claude)
        text = client.generate(SUMMARY_TEMPLATE, {"body": normalized_body})
    """

    def __init__(self, config: ClaudeConfig):
        """
        Initialize Claude API client.

        Args:
            config: ClaudeConfig with API key and model settings
        """
        self.config = config
        self._client: Optional[Anthropic] = Anthropic(api_key=config.api_key) if config.api_key else None

        if self._client:
            logger.info(f"ClaudeClient initialized (model: {config.model})")
        else:
            logger.warning("CLAUDE_API_KEY not set; text generation disabled")

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def generate(
        self,
        template: PromptTemplate,
        variables: Dict[str, str],
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Render a prompt template and return the generated text.

        Args:
            template: PromptTemplate to render
            variables: Values for the template placeholders
            max_tokens: Override for template.max_tokens

        Returns:
            Generated text, stripped (may be empty)

        Raises:
            GenerationError: Not configured, or the API call failed
        """
        if not self._client:
            raise GenerationError("Claude API key not configured")

        max_tokens = max_tokens or template.max_tokens or self.config.max_tokens
        start_time = datetime.now()
        try:
            response = self._client.messages.create(
                model=self.config.model,
                max_tokens=max_tokens,
                temperature=self.config.temperature,
                system=template.render_system(variables),
                messages=[{"role": "user", "content": template.render(variables)}],
            )
        except APIError as e:
            logger.error(f"Claude API error ({template.name}): {e}")
            raise GenerationError(f"Claude API request failed: {e}") from e
        except Exception as e:
            logger.error(f"Unexpected error calling Claude API ({template.name}): {e}", exc_info=True)
            raise GenerationError(f"Unexpected error: {e}") from e

        duration_ms = int((datetime.now() - start_time).total_seconds() * 1000)
        content = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")

        logger.info(
            f"✓ Generated {template.name} in {duration_ms}ms "
            f"(input: {response.usage.input_tokens}, output: {response.usage.output_tokens}, "
            f"stop: {response.stop_reason})"
        )
        return content.strip()
