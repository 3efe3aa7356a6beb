"""Closed set of shopping categories."""

from __future__ import annotations

CATEGORIES: list[str] = [
    "Fruits et légumes",
    "Boulangerie",
    "Produits laitiers",
    "Viandes et Poulet",
    "Épicerie",
    "Surgelés",
    "Boissons",
    "Hygiène",
    "Conserves",
]

UNKNOWN_CATEGORY = "Unknown"

# Picklist offered when re-categorizing an item
PICKLIST: list[str] = [*CATEGORIES, UNKNOWN_CATEGORY]

_BY_FOLDED: dict[str, str] = {c.casefold(): c for c in PICKLIST}


def normalize_category(label: str | None) -> str:
    """Map a free-form label onto the closed set.

    Matching is case-insensitive; anything outside the set becomes
    ``UNKNOWN_CATEGORY``.
    """
    if not label:
        return UNKNOWN_CATEGORY
    return _BY_FOLDED.get(label.strip().casefold(), UNKNOWN_CATEGORY)


def category_sort_key(label: str) -> tuple[int, str]:
    """Sort key placing known categories in picklist order, the rest after."""
    try:
        return (PICKLIST.index(label), "")
    except ValueError:
        return (len(PICKLIST), label.casefold())
