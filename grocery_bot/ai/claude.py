"""Claude API backend for grocery list parsing."""

from __future__ import annotations

import logging

from ..errors import ParsingFailedError
from ..models import ParsedItem
from . import ItemParser, build_prompt, parse_response

logger = logging.getLogger(__name__)


class ClaudeItemParser(ItemParser):
    """Parse grocery lists with Anthropic's Claude."""

    def __init__(
        self, api_key: str = "", model: str = "claude-sonnet-4-5-20250929"
    ) -> None:
        self._api_key = api_key
        self._model = model

    async def parse(self, text: str) -> list[ParsedItem]:
        if not self._api_key:
            raise ValueError(
                "Anthropic API key is not set. "
                "Check the config file or the ANTHROPIC_API_KEY environment variable."
            )

        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install 'grocery-bot[claude]'"
            ) from None

        client = anthropic.AsyncAnthropic(api_key=self._api_key)
        try:
            response = await client.messages.create(
                model=self._model,
                max_tokens=4096,
                messages=[{"role": "user", "content": build_prompt(text)}],
            )
            raw = response.content[0].text
        except Exception as e:
            raise ParsingFailedError(f"Claude request failed: {e}") from e

        logger.debug("Claude raw response: %s", raw)
        return parse_response(raw)
