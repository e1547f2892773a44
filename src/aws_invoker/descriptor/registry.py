"""Shape registry with lazy, by-name resolution."""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from aws_invoker.descriptor.shapes import Shape
from aws_invoker.errors import UnknownShape


class ShapeRegistry:
    """Resolves shape references by name.

    Structure members, list members and map keys/values only hold the name
    of their target shape, so recursive shapes are walked one level at a
    time instead of being expanded when the descriptor is loaded.
    """

    def __init__(self, shapes: Mapping[str, Shape]) -> None:
        self._shapes = dict(shapes)

    def resolve(self, name: str) -> Shape:
        shape = self._shapes.get(name)
        if shape is None:
            raise UnknownShape(name)
        return shape

    def get(self, name: str | None) -> Shape | None:
        if name is None:
            return None
        return self._shapes.get(name)

    def names(self) -> list[str]:
        return list(self._shapes)

    def __contains__(self, name: object) -> bool:
        return name in self._shapes

    def __iter__(self) -> Iterator[str]:
        return iter(self._shapes)

    def __len__(self) -> int:
        return len(self._shapes)
