"""Message texts and keyboards for the grocery bot (Telegram HTML)."""

from __future__ import annotations

from html import escape

from ..categories import PICKLIST, category_sort_key
from ..models import CONFIRMING, FOUND, NOT_FOUND, PENDING, SELECTED, GroceryItem
from ..shopping import CategoryDetail, CategoryList, ShoppingList, View
from .commands import (
    AdvanceItem,
    BackToBatch,
    CancelBatch,
    CancelItem,
    ClearFound,
    ClearSelection,
    Command,
    ConfirmBatch,
    ConfirmItem,
    EditDraft,
    EditItem,
    EditNote,
    MarkNotFound,
    Noop,
    Refresh,
    SaveEdit,
    ShowCategories,
    ShowCategory,
)

# Button label paired with the command it triggers
ButtonRow = list[tuple[str, Command]]

STATUS_MARKERS = {
    PENDING: "• ",
    SELECTED: "➡️ ",
    NOT_FOUND: "🚫 ",
    FOUND: "✅ ",
    CONFIRMING: "❔ ",
}

HELP_TEXT = (
    "🛒 <b>Grocery list bot</b>\n\n"
    "Send me your shopping list, one product per line, for example:\n"
    "<code>2 pommes\nlait\npain 3</code>\n\n"
    "I sort the products into categories and ask you to confirm them.\n\n"
    "<b>Commands</b>\n"
    "/shop  shop by category\n"
    "/list  show the whole list\n"
    "/clear  empty the list\n"
    "/stats  product cache statistics\n"
    "/help  this message"
)

PARSING_TEXT = "🔄 Parsing your grocery list..."
PARSE_FAILED_TEXT = "⚠️ I could not understand that list right now. Please try again."
STALE_TEXT = "This button is no longer valid."
ERROR_TEXT = "Something went wrong, please try again."
UNAUTHORIZED_TEXT = "Sorry, you are not allowed to use this bot."


def item_label(item: GroceryItem, *, marker: bool = True) -> str:
    """Plain-text label used on buttons."""
    label = item.name
    if item.quantity > 1:
        label += f" x{item.quantity}"
    if item.note:
        label += f" ({item.note})"
    if marker:
        label = STATUS_MARKERS.get(item.status, "") + label
    return label


def item_line(item: GroceryItem) -> str:
    """HTML line for an item inside a message body."""
    line = STATUS_MARKERS.get(item.status, "") + escape(item.name)
    if item.quantity > 1:
        line += f" x{item.quantity}"
    if item.note:
        line += f" <i>({escape(item.note)})</i>"
    return line


# --- Batch confirmation ---


def no_items_text(dropped: int = 0) -> str:
    text = "🤷 No valid grocery items found in your message."
    if dropped:
        text += f"\n{dropped} line(s) could not be read."
    return text


def batch_text(items: list[GroceryItem], dropped: int = 0) -> str:
    if not items:
        return "❌ Batch cancelled."

    pending = [i for i in items if i.status == CONFIRMING]
    lines = ["🛒 <b>New items</b>"]
    for item in items:
        lines.append(f"{item_line(item)}  <i>{escape(item.category)}</i>")
    if dropped:
        lines.append(f"\n{dropped} line(s) could not be read.")
    if pending:
        lines.append("\nConfirm the items to add them to your list.")
    else:
        lines.append("\n✅ All items handled.")
    return "\n".join(lines)


def batch_keyboard(
    batch_id: str, items: list[GroceryItem], origins: dict[str, str]
) -> list[ButtonRow]:
    rows: list[ButtonRow] = []
    pending = [i for i in items if i.status == CONFIRMING]
    for item in pending:
        rows.append([
            (f"✅ {item_label(item, marker=False)}", ConfirmItem(batch_id, item.id, origins)),
            ("✏️", EditItem(batch_id, item.id, origins)),
            ("❌", CancelItem(batch_id, item.id, origins)),
        ])
    if len(pending) > 1:
        rows.append([
            ("✅ Confirm all", ConfirmBatch(batch_id, origins)),
            ("❌ Cancel all", CancelBatch(batch_id)),
        ])
    return rows


# --- Edit view ---


def edit_text(item: GroceryItem, category: str, quantity: int, note: str | None) -> str:
    lines = [
        f"✏️ <b>{escape(item.name)}</b>",
        f"Category: <i>{escape(category)}</i>",
        f"Quantity: {quantity}",
    ]
    if note:
        lines.append(f"Note: <i>{escape(note)}</i>")
    return "\n".join(lines)


def edit_keyboard(draft: EditDraft) -> list[ButtonRow]:
    def with_changes(**changes) -> EditDraft:
        values = {
            "batch_id": draft.batch_id,
            "item_id": draft.item_id,
            "category": draft.category,
            "quantity": draft.quantity,
            "note": draft.note,
            "origins": draft.origins,
        }
        values.update(changes)
        return EditDraft(**values)

    rows: list[ButtonRow] = []
    row: ButtonRow = []
    for category in PICKLIST:
        label = f"• {category}" if category == draft.category else category
        row.append((label, with_changes(category=category)))
        if len(row) == 2:
            rows.append(row)
            row = []
    if row:
        rows.append(row)

    rows.append([
        ("➖", with_changes(quantity=max(1, draft.quantity - 1))),
        (str(draft.quantity), Noop()),
        ("➕", with_changes(quantity=draft.quantity + 1)),
    ])
    rows.append([
        (
            "📝 Note",
            EditNote(
                draft.batch_id,
                draft.item_id,
                draft.category,
                draft.quantity,
                draft.note,
                draft.origins,
            ),
        )
    ])
    rows.append([
        (
            "💾 Save",
            SaveEdit(
                draft.batch_id,
                draft.item_id,
                draft.category,
                draft.quantity,
                draft.note,
                draft.origins,
            ),
        ),
        ("⬅️ Back", BackToBatch(draft.batch_id, draft.origins)),
    ])
    return rows


def note_prompt_text(name: str) -> str:
    return f"📝 Reply to this message with a note for <b>{escape(name)}</b>."


# --- Shopping views ---


def _ordered_categories(shopping: ShoppingList) -> list[str]:
    return sorted(shopping.grouped, key=category_sort_key)


def category_list_text(shopping: ShoppingList) -> str:
    if shopping.is_empty:
        return "📝 Your grocery list is empty."
    if not shopping.active_items:
        return (
            f"🎉 Everything found! ({len(shopping.found_items)} item(s))\n"
            "Clear the found items to start over."
        )
    text = (
        f"🛒 <b>Shopping</b>: {len(shopping.active_items)} item(s) left"
        "\nPick a category."
    )
    if shopping.found_items:
        text += f"\n✅ {len(shopping.found_items)} found"
    return text


def category_list_keyboard(shopping: ShoppingList) -> list[ButtonRow]:
    rows: list[ButtonRow] = []
    counts = shopping.category_counts()
    for category in _ordered_categories(shopping):
        rows.append([(f"{category} ({counts[category]})", ShowCategory(category))])

    footer: ButtonRow = []
    if shopping.found_items:
        footer.append(("🧹 Clear found", ClearFound()))
    footer.append(("🔄 Refresh", Refresh()))
    rows.append(footer)
    if shopping.active_items:
        rows.append([("↩️ Clear selection", ClearSelection())])
    return rows


def category_detail_text(category: str, items: list[GroceryItem]) -> str:
    lines = [f"🛒 <b>{escape(category)}</b>"]
    selected = sum(1 for i in items if i.status == SELECTED)
    lines.append(f"{len(items)} item(s), {selected} in cart")
    lines.append("Tap an item to move it along.")
    return "\n".join(lines)


def category_detail_keyboard(
    category: str, items: list[GroceryItem], shopping: ShoppingList
) -> list[ButtonRow]:
    rows: list[ButtonRow] = []
    for item in items:
        row: ButtonRow = [(item_label(item), AdvanceItem(item.id, category))]
        if item.status == SELECTED:
            row.append(("🚫 Not found", MarkNotFound(item.id, category)))
        rows.append(row)

    rows.append([("⬅️ Categories", ShowCategories())])
    footer: ButtonRow = []
    if shopping.found_items:
        footer.append(("🧹 Clear found", ClearFound(category)))
    footer.append(("🔄 Refresh", Refresh(category)))
    rows.append(footer)
    return rows


def shopping_view(view: View, shopping: ShoppingList) -> tuple[str, list[ButtonRow]]:
    """Text and keyboard for a resolved shopping view."""
    match view:
        case CategoryDetail(category=category):
            items = shopping.items_in(category)
            return (
                category_detail_text(category, items),
                category_detail_keyboard(category, items, shopping),
            )
        case CategoryList():
            return category_list_text(shopping), category_list_keyboard(shopping)
    raise TypeError(f"Unknown view: {view!r}")


# --- Plain texts ---


def grocery_list_text(shopping: ShoppingList) -> str:
    """The /list output: active items by category, found items apart."""
    if shopping.is_empty:
        return "📝 Your grocery list is empty."

    lines = ["📝 <b>Grocery list</b>"]
    for category in _ordered_categories(shopping):
        lines.append(f"\n<b>{escape(category)}</b>")
        lines.extend(item_line(i) for i in shopping.items_in(category))
    if shopping.found_items:
        lines.append("\n<b>Found</b>")
        lines.extend(item_line(i) for i in shopping.found_items)
    return "\n".join(lines)


def cleared_text(count: int) -> str:
    if count == 0:
        return "📝 The list was already empty."
    return f"🗑️ Cleared {count} item(s) from the list."


def stats_text(stats: dict[str, int]) -> str:
    return (
        "📊 <b>Product cache</b>\n"
        f"Products: {stats.get('products', 0)}\n"
        f"Variants: {stats.get('variants', 0)}\n"
        f"Total forms: {stats.get('total', 0)}"
    )
