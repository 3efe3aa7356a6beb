"""Cache-then-AI parsing of free-text grocery lists."""

from __future__ import annotations

import logging

from .ai import ItemParser
from .cache import ProductCache, parse_line
from .categories import UNKNOWN_CATEGORY
from .models import ParsedItem

logger = logging.getLogger(__name__)


class ParsingPipeline:
    """Turns raw multi-line text into parsed items.

    Known products are resolved from the product cache; only the remaining
    lines are sent to the AI parser, in one call. Confirmed items are fed
    back into the cache through :meth:`learn`.
    """

    def __init__(self, cache: ProductCache, parser: ItemParser) -> None:
        self._cache = cache
        self._parser = parser

    async def parse_for_batch(self, text: str) -> list[ParsedItem]:
        """Parse ``text`` into items, cache hits first.

        AI results are paired with the miss lines by position. When the
        parser returns more entries than there were misses, the extra
        entries use their own name as the original line; when it returns
        fewer, the leftover lines become "Unknown" items so nothing the user
        typed is lost.

        Raises:
            ParsingFailedError: If the AI call fails; cache hits resolved so
                far are discarded with it.
        """
        resolution = self._cache.resolve_batch(text)

        ai_items: list[ParsedItem] = []
        if resolution.misses:
            logger.info("Sending %d unparsed line(s) to the AI parser", len(resolution.misses))
            ai_items = await self._parser.parse("\n".join(resolution.misses))
            if len(ai_items) != len(resolution.misses):
                logger.warning(
                    "AI parser returned %d item(s) for %d line(s)",
                    len(ai_items),
                    len(resolution.misses),
                )
            for index, item in enumerate(ai_items):
                if index < len(resolution.misses):
                    item.original_line = resolution.misses[index].strip()
                else:
                    item.original_line = item.name
            # Lines the parser skipped are kept as uncategorized items
            for line in resolution.misses[len(ai_items):]:
                parsed = parse_line(line)
                ai_items.append(
                    ParsedItem(
                        name=parsed.product_text,
                        quantity=parsed.quantity,
                        category=UNKNOWN_CATEGORY,
                        original_line=line.strip(),
                    )
                )
        else:
            logger.info("All lines resolved from cache, skipping the AI parser")

        return [*resolution.hits, *ai_items]

    def learn(self, name: str, category: str, original_line: str) -> None:
        """Record the surface form a confirmed item was typed as."""
        if not original_line:
            return
        product_text = parse_line(original_line).product_text
        self._cache.record_variant(name, category, product_text)
