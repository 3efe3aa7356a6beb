"""Gemini API backend for grocery list parsing."""

from __future__ import annotations

import logging

from ..errors import ParsingFailedError
from ..models import ParsedItem
from . import ItemParser, build_prompt, parse_response

logger = logging.getLogger(__name__)


class GeminiItemParser(ItemParser):
    """Parse grocery lists with Google Gemini."""

    def __init__(self, api_key: str = "", model: str = "gemini-2.0-flash") -> None:
        self._api_key = api_key
        self._model = model

    async def parse(self, text: str) -> list[ParsedItem]:
        if not self._api_key:
            raise ValueError(
                "Gemini API key is not set. "
                "Check the config file or the GOOGLE_API_KEY environment variable."
            )

        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install 'grocery-bot[gemini]'"
            ) from None

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(self._model)

        logger.debug("Gemini input: %r", text)
        try:
            response = await model.generate_content_async(build_prompt(text))
            raw = response.text
        except Exception as e:
            raise ParsingFailedError(f"Gemini request failed: {e}") from e

        logger.debug("Gemini raw response: %s", raw)
        return parse_response(raw)
