from __future__ import annotations

from typing import Iterable, Iterator, Tuple, Union

FeatureInput = Union[str, Iterable[str], "FeatureList", None]


class FeatureList:
    """
    Ordered set of feature (gene) identifiers.

    Canonical order is first-seen order; duplicates collapse on parse.
    Membership is exact string match. Only at the API / renderer boundary
    is the list serialized to a comma-joined string (see to_param).
    """

    __slots__ = ("_items", "_members")

    def __init__(self, items: Iterable[str] = ()) -> None:
        seen = set()
        ordered = []
        for item in items:
            if item in seen:
                continue
            seen.add(item)
            ordered.append(item)
        self._items: Tuple[str, ...] = tuple(ordered)
        self._members = frozenset(seen)

    @classmethod
    def parse(cls, value: FeatureInput) -> "FeatureList":
        if value is None:
            return cls()
        if isinstance(value, FeatureList):
            return value
        if isinstance(value, str):
            parts = value.split(",")
        else:
            parts = [str(v) for v in value]
        return cls(p.strip() for p in parts if p and p.strip())

    def union(self, other: FeatureInput) -> "FeatureList":
        return FeatureList(self._items + FeatureList.parse(other)._items)

    def difference(self, other: FeatureInput) -> "FeatureList":
        drop = FeatureList.parse(other)
        return FeatureList(f for f in self._items if f not in drop)

    def prepend(self, feature: str) -> "FeatureList":
        return FeatureList((feature,) + self._items)

    def to_param(self) -> str:
        return ",".join(self._items)

    def to_list(self) -> list:
        return list(self._items)

    def __contains__(self, item: object) -> bool:
        return item in self._members

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __getitem__(self, idx: int) -> str:
        return self._items[idx]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FeatureList):
            return self._items == other._items
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._items)

    def __repr__(self) -> str:
        return f"FeatureList({self.to_param()!r})"

    def __str__(self) -> str:
        return self.to_param()
