"""AI parser base class, prompt, response parsing and factory."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from ..categories import CATEGORIES, UNKNOWN_CATEGORY, normalize_category
from ..errors import ParsingFailedError
from ..models import MAX_QUANTITY, ParsedItem

if TYPE_CHECKING:
    from ..config import BotConfig

_PROMPT = """\
SYSTEM: You are a grocery list parser that corrects spelling and grammar errors \
in French grocery lists. Each LINE is ONE COMPLETE item name. NEVER split words \
within a line.

EXAMPLES OF CORRECT PARSING:
Input line: "Oeuf Dan" -> {{"article": "Oeuf Dan", "quantity": 1, "category": "Produits laitiers"}}
Input line: "Pain complet" -> {{"article": "Pain complet", "quantity": 1, "category": "Boulangerie"}}
Input line: "2 pommes" -> {{"article": "pommes", "quantity": 2, "category": "Fruits et légumes"}}

Categories available: {categories}

RULES:
1. FIRST: Correct any spelling and grammar errors in the French text
2. Each line = exactly ONE item in the output JSON, in the same order as the input
3. Keep complete item names together (all words on the same line = one item name)
4. Extract the quantity if mentioned ("2 pommes" -> quantity 2, article "pommes")
5. If a word is in Hebrew, keep it in Hebrew and categorize it by its meaning
6. If you don't understand a word or are unsure of its category, use "{unknown}"
7. Do NOT add any items that are not in the input list
8. Return ONLY a valid JSON array of {{"article", "quantity", "category"}} objects

Parse and correct this grocery list (each line is one item):
{text}"""


def build_prompt(text: str) -> str:
    return _PROMPT.format(
        categories=", ".join(CATEGORIES),
        unknown=UNKNOWN_CATEGORY,
        text=text,
    )


class ItemParser(ABC):
    """Abstract base for turning free text into grocery items."""

    @abstractmethod
    async def parse(self, text: str) -> list[ParsedItem]:
        """Parse newline-separated product guesses, one item per line.

        Raises:
            ParsingFailedError: If the service errors or answers with
                something that is not a list of complete items.
        """
        ...


def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [line for line in lines[1:] if not line.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return cleaned.strip()


def _quantity(value) -> int:
    try:
        qty = int(value)
    except (TypeError, ValueError):
        return 1
    return min(max(1, qty), MAX_QUANTITY)


def parse_response(text: str) -> list[ParsedItem]:
    """Parse the JSON array returned by a language model.

    Any entry missing ``article`` (or ``name``) or ``category`` fails the
    whole response. Categories outside the closed set become "Unknown".
    """
    try:
        items = json.loads(_strip_fences(text))
    except json.JSONDecodeError as e:
        raise ParsingFailedError(f"AI response was not valid JSON: {e}") from e

    if not isinstance(items, list):
        raise ParsingFailedError("AI response was not a JSON array")

    result: list[ParsedItem] = []
    for entry in items:
        if not isinstance(entry, dict):
            raise ParsingFailedError(f"AI response entry is not an object: {entry!r}")
        name = entry.get("article") or entry.get("name")
        category = entry.get("category")
        if not isinstance(name, str) or not name.strip() or not category:
            raise ParsingFailedError(
                f"AI response entry missing required fields: {entry!r}"
            )
        result.append(
            ParsedItem(
                name=name.strip(),
                quantity=_quantity(entry.get("quantity", 1)),
                category=normalize_category(str(category)),
            )
        )
    return result


def create_parser(config: BotConfig) -> ItemParser:
    """Create an AI parser based on configuration."""
    backend_name = config.ai.backend

    match backend_name:
        case "gemini":
            from .gemini import GeminiItemParser

            return GeminiItemParser(
                api_key=config.ai.gemini.api_key,
                model=config.ai.gemini.model,
            )
        case "claude":
            from .claude import ClaudeItemParser

            return ClaudeItemParser(
                api_key=config.ai.claude.api_key,
                model=config.ai.claude.model,
            )
        case _:
            raise ValueError(
                f"Unknown AI backend: {backend_name!r} (choose gemini or claude)"
            )


__all__ = [
    "ItemParser",
    "build_prompt",
    "create_parser",
    "parse_response",
]
