"""Learned product cache used to skip the AI parser for known products."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from .errors import StoreError
from .models import MAX_QUANTITY, ParsedItem

logger = logging.getLogger(__name__)

_QTY_FIRST = re.compile(r"^(\d+)\s+(.+)$")
_QTY_LAST = re.compile(r"^(.+)\s+(\d+)$")


@dataclass
class ParsedLine:
    quantity: int
    product_text: str


@dataclass
class CacheEntry:
    canonical_name: str
    category: str
    variants: list[str] = field(default_factory=list)

    def to_json(self) -> dict:
        return {
            "correctName": self.canonical_name,
            "category": self.category,
            "variants": list(self.variants),
        }

    @classmethod
    def from_json(cls, data: dict) -> CacheEntry:
        return cls(
            canonical_name=data["correctName"],
            category=data["category"],
            variants=list(data.get("variants") or []),
        )


@dataclass
class CacheResolution:
    hits: list[ParsedItem] = field(default_factory=list)
    misses: list[str] = field(default_factory=list)


def normalize(text: str) -> str:
    return text.strip().casefold()


def parse_line(line: str) -> ParsedLine:
    """Split a line into a quantity and the product text.

    "3 tomates" and "tomates 3" both give (3, "tomates"); a line without an
    adjacent number keeps quantity 1 and the whole line as product text.
    Quantities above MAX_QUANTITY are capped.
    The quantity-first form is tried before quantity-last.
    """
    trimmed = line.strip()
    for pattern, qty_group, text_group in ((_QTY_FIRST, 1, 2), (_QTY_LAST, 2, 1)):
        m = pattern.match(trimmed)
        if m:
            product = m.group(text_group).strip()
            if product:
                quantity = min(int(m.group(qty_group)), MAX_QUANTITY)
                return ParsedLine(quantity=quantity, product_text=product)
    return ParsedLine(quantity=1, product_text=trimmed)


class ProductCache:
    """Mapping of canonical product names and known variants to a category.

    Persisted as a single JSON document keyed by normalized canonical name
    and rewritten wholesale on every mutation. The document is re-read on
    every call so concurrent handlers always see the latest write.
    """

    def __init__(
        self, path: str | Path = "~/.config/grocery-bot/product_cache.json"
    ) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, CacheEntry]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise StoreError(f"reading product cache failed: {e}") from e

        try:
            data = json.loads(raw) if raw.strip() else {}
            return {key: CacheEntry.from_json(value) for key, value in data.items()}
        except (json.JSONDecodeError, AttributeError, KeyError, TypeError) as e:
            raise StoreError(f"product cache {self._path} is malformed: {e}") from e

    def _save(self, entries: dict[str, CacheEntry]) -> None:
        doc = {key: entry.to_json() for key, entry in entries.items()}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                dir=self._path.parent, prefix=".product_cache.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(doc, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self._path)
        except OSError as e:
            raise StoreError(f"writing product cache failed: {e}") from e
        logger.debug("Saved product cache with %d products", len(doc))

    @staticmethod
    def _find(entries: dict[str, CacheEntry], product_text: str) -> CacheEntry | None:
        key = normalize(product_text)
        if key in entries:
            return entries[key]
        for entry in entries.values():
            if key in entry.variants:
                return entry
        return None

    def lookup(self, product_text: str) -> CacheEntry | None:
        """Find a product by canonical name first, then by known variant."""
        return self._find(self._load(), product_text)

    def resolve_batch(self, text: str) -> CacheResolution:
        """Split multi-line input into cache hits and lines left for the AI.

        Blank lines are dropped; misses keep the raw line untouched.
        """
        entries = self._load()
        result = CacheResolution()
        for line in text.splitlines():
            if not line.strip():
                continue
            parsed = parse_line(line)
            entry = self._find(entries, parsed.product_text)
            if entry is None:
                logger.debug("Cache miss: %r", line)
                result.misses.append(line)
                continue
            logger.debug(
                "Cache hit: %r -> %s [%s]", line, entry.canonical_name, entry.category
            )
            result.hits.append(
                ParsedItem(
                    name=entry.canonical_name,
                    quantity=parsed.quantity,
                    category=entry.category,
                    original_line=line.strip(),
                )
            )
        logger.info(
            "Cache resolved %d line(s), %d left for the parser",
            len(result.hits),
            len(result.misses),
        )
        return result

    def record_variant(self, canonical_name: str, category: str, variant: str) -> None:
        """Remember that ``variant`` means ``canonical_name`` in ``category``.

        No-op when the variant is the canonical name itself. Returns only
        after the document has been written.
        """
        key = normalize(canonical_name)
        normalized_variant = normalize(variant)
        if not key or key == normalized_variant:
            return

        entries = self._load()
        entry = entries.get(key)
        if entry is None:
            entry = CacheEntry(canonical_name=canonical_name.strip(), category=category)
            entries[key] = entry
            logger.info("Added product %s [%s] to cache", entry.canonical_name, category)
        else:
            entry.category = category

        if normalized_variant and normalized_variant not in entry.variants:
            entry.variants.append(normalized_variant)
            logger.info("Learned variant %r for %s", normalized_variant, entry.canonical_name)

        self._save(entries)

    def stats(self) -> dict[str, int]:
        entries = self._load()
        variants = sum(len(e.variants) for e in entries.values())
        return {
            "products": len(entries),
            "variants": variants,
            "total": len(entries) + variants,
        }
