"""
Building blocks shared by the list views.

Pagination, drag-to-reorder of rows and columns, and row selection.
"""

import math
from dataclasses import dataclass, field
from typing import Generic, Iterable, List, Sequence, Set, TypeVar

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of a list view."""

    items: List[T]
    page: int
    per_page: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.per_page)

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def start_index(self) -> int:
        """1-based index of the first row shown, 0 for an empty page."""
        return (self.page - 1) * self.per_page + 1 if self.items else 0

    @property
    def end_index(self) -> int:
        return self.start_index + len(self.items) - 1 if self.items else 0


def paginate(items: Sequence[T], page: int = 1, per_page: int = 20) -> Page[T]:
    """
    Slice a sequence into a page.

    Args:
        items: Full, already filtered and sorted, sequence
        page: 1-based page number
        per_page: Rows per page

    Returns:
        The requested page; pages past the end are empty

    Raises:
        ValueError: If page or per_page is less than 1
    """
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if per_page < 1:
        raise ValueError(f"per_page must be >= 1, got {per_page}")

    start = (page - 1) * per_page
    return Page(
        items=list(items[start : start + per_page]),
        page=page,
        per_page=per_page,
        total=len(items),
    )


def move_item(order: Sequence[T], from_index: int, to_index: int) -> List[T]:
    """
    Move one element to a new position (drag and drop).

    The element is removed first and then inserted at ``to_index`` of the
    shortened list. The input is not modified.

    Raises:
        IndexError: If either index is out of range
    """
    size = len(order)
    for name, index in (("from_index", from_index), ("to_index", to_index)):
        if not 0 <= index < size:
            raise IndexError(f"{name} {index} out of range for {size} items")

    result = list(order)
    moved = result.pop(from_index)
    result.insert(to_index, moved)
    return result


class ColumnLayout:
    """Column order of a table that the user can rearrange."""

    def __init__(self, default_order: Iterable[str]):
        self.default_order = list(default_order)
        if len(set(self.default_order)) != len(self.default_order):
            raise ValueError("Column ids must be unique")
        self.order = list(self.default_order)

    def move(self, from_index: int, to_index: int) -> List[str]:
        self.order = move_item(self.order, from_index, to_index)
        return self.order

    def move_column(self, column: str, before: str) -> List[str]:
        """Drop ``column`` onto the position currently held by ``before``."""
        return self.move(self.order.index(column), self.order.index(before))

    def reset(self) -> List[str]:
        self.order = list(self.default_order)
        return self.order


@dataclass
class SelectionState:
    """Row ids ticked in a list view."""

    selected: Set[str] = field(default_factory=set)

    def toggle(self, item_id: str) -> bool:
        """Flip one row. Returns True if it is now selected."""
        if item_id in self.selected:
            self.selected.discard(item_id)
            return False
        self.selected.add(item_id)
        return True

    def toggle_all(self, page_ids: Iterable[str]) -> None:
        """Select every row on the page, or clear them if all were selected."""
        ids = set(page_ids)
        if ids and ids <= self.selected:
            self.selected -= ids
        else:
            self.selected |= ids

    def clear(self) -> None:
        self.selected.clear()

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.selected

    def __len__(self) -> int:
        return len(self.selected)
