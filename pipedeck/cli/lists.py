from dataclasses import dataclass, replace
from typing import Callable, Generic, Iterable, Optional, Tuple, TypeVar

T = TypeVar("T")


def clamp(value: int, low: int, high: int) -> int:
    if high < low:
        return low
    return max(low, min(value, high))


@dataclass(frozen=True)
class CursorList(Generic[T]):
    """
    Immutable list with a selection cursor kept in [0, len-1], or 0 when empty.
    Every operation returns a new instance.
    """

    items: Tuple[T, ...] = ()
    cursor: int = 0

    @classmethod
    def of(cls, items: Iterable[T], cursor: int = 0) -> "CursorList[T]":
        values = tuple(items)
        return cls(items=values, cursor=clamp(cursor, 0, len(values) - 1))

    def __len__(self) -> int:
        return len(self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def selected(self) -> Optional[T]:
        if not self.items:
            return None
        return self.items[self.cursor]

    def move_down(self) -> "CursorList[T]":
        return replace(self, cursor=clamp(self.cursor + 1, 0, len(self.items) - 1))

    def move_up(self) -> "CursorList[T]":
        return replace(self, cursor=clamp(self.cursor - 1, 0, len(self.items) - 1))

    def refresh(self, items: Iterable[T], key: Optional[Callable[[T], object]] = None) -> "CursorList[T]":
        """
        Replace the items. With key, the cursor follows the selected item by
        identity and falls back to the first entry when it disappeared; without
        key, the cursor position is only clamped.
        """
        values = tuple(items)
        current = self.selected
        if key is None or current is None:
            return CursorList.of(values, self.cursor)
        wanted = key(current)
        for idx, item in enumerate(values):
            if key(item) == wanted:
                return CursorList(items=values, cursor=idx)
        return CursorList.of(values, 0)
