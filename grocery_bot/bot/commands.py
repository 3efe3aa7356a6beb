"""Typed callback commands behind inline buttons.

A button carries only a session token; the token's payload is one of the
commands below, encoded as ``{"action": <tag>, "chat_id": ..., **fields}``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import ClassVar

from ..shopping import CategoryDetail, CategoryList, View


@dataclass(frozen=True)
class ConfirmItem:
    action: ClassVar[str] = "confirm_item"
    batch_id: str
    item_id: int
    # item id (as str) -> line the item was typed as, for the whole batch
    origins: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CancelItem:
    action: ClassVar[str] = "cancel_item"
    batch_id: str
    item_id: int
    origins: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ConfirmBatch:
    action: ClassVar[str] = "confirm_batch"
    batch_id: str
    origins: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CancelBatch:
    action: ClassVar[str] = "cancel_batch"
    batch_id: str


@dataclass(frozen=True)
class EditItem:
    action: ClassVar[str] = "edit_item"
    batch_id: str
    item_id: int
    origins: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class EditDraft:
    """Re-render the edit view with an unsaved category or quantity."""

    action: ClassVar[str] = "edit_draft"
    batch_id: str
    item_id: int
    category: str
    quantity: int
    note: str | None = None
    origins: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class EditNote:
    """Ask the user to reply with a note for the item being edited."""

    action: ClassVar[str] = "edit_note"
    batch_id: str
    item_id: int
    category: str
    quantity: int
    note: str | None = None
    origins: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NoteReply:
    """Bound to the note prompt message; a reply to it carries the note."""

    action: ClassVar[str] = "note_reply"
    batch_id: str
    item_id: int
    category: str
    quantity: int
    edit_message_id: int
    note: str | None = None
    origins: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SaveEdit:
    action: ClassVar[str] = "save_edit"
    batch_id: str
    item_id: int
    category: str
    quantity: int
    note: str | None = None
    origins: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BackToBatch:
    action: ClassVar[str] = "back_to_batch"
    batch_id: str
    origins: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ShowCategories:
    action: ClassVar[str] = "show_categories"


@dataclass(frozen=True)
class ShowCategory:
    action: ClassVar[str] = "show_category"
    category: str


@dataclass(frozen=True)
class AdvanceItem:
    action: ClassVar[str] = "advance_item"
    item_id: int
    # Category being viewed, None for the category list
    category: str | None = None


@dataclass(frozen=True)
class MarkNotFound:
    action: ClassVar[str] = "mark_not_found"
    item_id: int
    category: str | None = None


@dataclass(frozen=True)
class ClearFound:
    action: ClassVar[str] = "clear_found"
    category: str | None = None


@dataclass(frozen=True)
class ClearSelection:
    action: ClassVar[str] = "clear_selection"
    category: str | None = None


@dataclass(frozen=True)
class Refresh:
    action: ClassVar[str] = "refresh"
    category: str | None = None


@dataclass(frozen=True)
class Noop:
    action: ClassVar[str] = "noop"


Command = (
    ConfirmItem
    | CancelItem
    | ConfirmBatch
    | CancelBatch
    | EditItem
    | EditDraft
    | EditNote
    | NoteReply
    | SaveEdit
    | BackToBatch
    | ShowCategories
    | ShowCategory
    | AdvanceItem
    | MarkNotFound
    | ClearFound
    | ClearSelection
    | Refresh
    | Noop
)

_COMMANDS: dict[str, type] = {
    cls.action: cls
    for cls in (
        ConfirmItem,
        CancelItem,
        ConfirmBatch,
        CancelBatch,
        EditItem,
        EditDraft,
        EditNote,
        NoteReply,
        SaveEdit,
        BackToBatch,
        ShowCategories,
        ShowCategory,
        AdvanceItem,
        MarkNotFound,
        ClearFound,
        ClearSelection,
        Refresh,
        Noop,
    )
}


def encode_command(command: Command, chat_id: int) -> dict:
    """Serialize a command into a session payload."""
    return {"action": command.action, "chat_id": chat_id, **asdict(command)}


def decode_command(payload: dict) -> Command:
    """Rebuild a command from a session payload.

    Raises:
        ValueError: If the action tag is unknown or a field is missing.
    """
    action = payload.get("action")
    cls = _COMMANDS.get(action) if isinstance(action, str) else None
    if cls is None:
        raise ValueError(f"Unknown callback action: {action!r}")

    kwargs = {}
    for f in fields(cls):
        if f.name in payload:
            kwargs[f.name] = payload[f.name]
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ValueError(f"Malformed {action} payload: {e}") from e


def view_for(category: str | None) -> View:
    """Map the category carried by a shopping command onto a view."""
    if category is None:
        return CategoryList()
    return CategoryDetail(category)


def origins_by_id(origins: dict[str, str]) -> dict[int, str]:
    """Convert JSON-keyed origins back to item ids."""
    result: dict[int, str] = {}
    for key, line in origins.items():
        try:
            result[int(key)] = line
        except (TypeError, ValueError):
            continue
    return result
