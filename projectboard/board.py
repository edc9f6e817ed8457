"""Board normalization and column reconciliation.

Everything here works on plain ``Column``/``Card`` objects and performs no I/O.
Normalizer functions turn loosely specified client descriptors into canonical
columns; reconciler functions apply structural edits to a column list in place
while keeping three properties:

* column names are unique, compared case-insensitively;
* ``order`` values are 1..N and match list position;
* every card is kept, and its ``status`` equals its column's name.
"""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from .errors import ConflictError, NotFoundError, ValidationError
from .models import Card, Column
from .schemas import CardIn, ColumnIn, ColumnPatch
from .utils import as_utc, now_utc

DEFAULT_BOARD_COLUMNS = (
    {"name": "To Do", "defaultCard": True},
    {"name": "In Progress"},
    {"name": "In Review"},
    {"name": "Done"},
)

DEFAULT_CARD_TITLE = "Scrum 1"
SEED_CARD_TITLE = "Task 1"
SEED_CARD_DESCRIPTION = "Scrum 1 default work item"


def _fold(name: str) -> str:
    return name.strip().casefold()


def _sort_key(column: Column) -> tuple:
    return (column.order, _fold(column.name))


# === Normalizer ===


def default_cards(column_name: str, wanted: bool) -> List[Card]:
    if not wanted:
        return []
    return [
        Card(
            title=SEED_CARD_TITLE,
            description=SEED_CARD_DESCRIPTION,
            status=column_name,
            assignee=None,
            due_date=now_utc(),
        )
    ]


def normalize_card(raw: CardIn, column_name: str) -> Card:
    return Card(
        title=raw.title or DEFAULT_CARD_TITLE,
        description=raw.description or "",
        status=column_name,
        assignee=raw.assignee or None,
        due_date=as_utc(raw.dueDate) if raw.dueDate else now_utc(),
    )


def normalize_cards(raw_cards: Iterable[CardIn], column_name: str) -> List[Card]:
    return [normalize_card(raw, column_name) for raw in raw_cards]


def normalize_columns(
    raw_columns: Sequence[ColumnIn], enforce_default_card: bool = True
) -> List[Column]:
    """Resolve names, orders and cards for each raw column descriptor.

    An empty sequence yields the default four-column board. Otherwise a column
    without a name borrows the default column name at the same position, or
    ``Column {n}`` past the fourth. ``order`` is kept as given; callers that
    need a dense ordering run the result through :func:`arrange`.
    """
    if not raw_columns:
        return [
            Column(
                name=config["name"],
                order=position,
                cards=default_cards(
                    config["name"], enforce_default_card and config.get("defaultCard", False)
                ),
            )
            for position, config in enumerate(DEFAULT_BOARD_COLUMNS, start=1)
        ]

    columns = []
    for index, raw in enumerate(raw_columns):
        fallback = DEFAULT_BOARD_COLUMNS[index] if index < len(DEFAULT_BOARD_COLUMNS) else {}
        name = (raw.name or "").strip() or fallback.get("name") or f"Column {index + 1}"

        cards = normalize_cards(raw.cards or [], name)
        if not cards and enforce_default_card:
            wanted = raw.defaultCard if raw.defaultCard is not None else fallback.get("defaultCard", False)
            cards = default_cards(name, wanted)

        order = raw.order if raw.order is not None else index + 1
        columns.append(Column(name=name, order=order, cards=cards))
    return columns


# === Reconciler ===


def reindex(columns: List[Column]) -> List[Column]:
    for position, column in enumerate(columns, start=1):
        column.order = position
    return columns


def ensure_unique_names(columns: Iterable[Column]) -> None:
    seen = set()
    for column in columns:
        key = _fold(column.name)
        if key in seen:
            raise ConflictError(f"Column '{column.name}' already exists")
        seen.add(key)


def arrange(columns: List[Column]) -> List[Column]:
    columns.sort(key=_sort_key)
    return reindex(columns)


def build_board(raw_columns: Sequence[ColumnIn], enforce_default_card: bool) -> List[Column]:
    """Canonical board for project create/update payloads."""
    columns = normalize_columns(raw_columns, enforce_default_card=enforce_default_card)
    ensure_unique_names(columns)
    return arrange(columns)


def sanitize_columns(stored: Sequence[dict]) -> List[Column]:
    """Re-normalize a persisted column document before it is edited."""
    if not stored:
        return []
    raw = [ColumnIn.model_validate(doc) for doc in stored]
    return arrange(normalize_columns(raw, enforce_default_card=False))


def find_column(columns: Sequence[Column], name: Optional[str]) -> int:
    key = _fold(name or "")
    for index, column in enumerate(columns):
        if _fold(column.name) == key:
            return index
    raise NotFoundError("Column not found")


def _name_taken(columns: Sequence[Column], name: str, exclude: Optional[int] = None) -> bool:
    key = _fold(name)
    return any(
        _fold(column.name) == key for index, column in enumerate(columns) if index != exclude
    )


def insert_column(columns: List[Column], raw: ColumnIn) -> Column:
    name = (raw.name or "").strip()
    if not name:
        raise ValidationError("Column name is required")
    if _name_taken(columns, name):
        raise ConflictError(f"Column '{name}' already exists")

    column = normalize_columns([raw.model_copy(update={"name": name})], enforce_default_card=False)[0]
    if raw.order is not None and raw.order > 0:
        index = min(raw.order - 1, len(columns))
    else:
        index = len(columns)
    columns.insert(index, column)
    reindex(columns)
    return column


def rename_column(columns: List[Column], current: str, new_name: Optional[str]) -> Column:
    index = find_column(columns, current)
    name = (new_name or "").strip()
    if not name:
        raise ValidationError("Column name cannot be empty")
    if _name_taken(columns, name, exclude=index):
        raise ConflictError(f"Column '{name}' already exists")

    column = columns[index]
    column.name = name
    for card in column.cards:
        card.status = name
    return column


def replace_cards(column: Column, raw_cards: Iterable[CardIn]) -> Column:
    column.cards = normalize_cards(raw_cards, column.name)
    return column


def move_column(columns: List[Column], name: str, position: int) -> Column:
    column = columns.pop(find_column(columns, name))
    target = min(max(position - 1, 0), len(columns))
    columns.insert(target, column)
    reindex(columns)
    return column


def update_column(columns: List[Column], name: str, patch: ColumnPatch) -> Column:
    """Rename, replace cards and reorder one column, in that order."""
    if patch.name is None and patch.cards is None and patch.order is None:
        raise ValidationError("Provide name, order or cards to update")

    column = columns[find_column(columns, name)]
    if patch.name is not None:
        rename_column(columns, column.name, patch.name)
    if patch.cards is not None:
        replace_cards(column, patch.cards)
    if patch.order is not None:
        move_column(columns, column.name, patch.order)
    return column


def delete_column(columns: List[Column], name: str, target: Optional[str] = None) -> Column:
    """Remove a column, moving its cards to ``target`` first.

    The returned column keeps its last name and order with an empty card list.
    """
    index = find_column(columns, name)
    column = columns[index]

    destination = None
    if column.cards:
        if not (target or "").strip():
            raise ValidationError("targetColumn is required to move existing cards")
        key = _fold(target)
        destination = next(
            (other for i, other in enumerate(columns) if i != index and _fold(other.name) == key),
            None,
        )
        if destination is None:
            raise NotFoundError("Target column not found")

    del columns[index]
    if destination is not None:
        for card in column.cards:
            card.status = destination.name
            destination.cards.append(card)
        column.cards = []
    reindex(columns)
    return column
