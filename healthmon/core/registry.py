"""Ordered, id-indexed plugin collection (one per namespace)."""

from __future__ import annotations

from collections.abc import Iterator

from ..errors import RegistrationError
from .plugin import PluginDescriptor, PluginKind


class PluginRegistry:
    """Registration-ordered list of descriptors plus an id index."""

    def __init__(self, kind: PluginKind) -> None:
        self.kind = kind
        self._items: list[PluginDescriptor] = []
        self._by_id: dict[str, PluginDescriptor] = {}

    def add(self, descriptor: PluginDescriptor) -> None:
        if descriptor.id in self._by_id:
            raise RegistrationError(
                f"{self.kind.value.capitalize()} id {descriptor.id!r} already in use, "
                f"specify a unique id via options={{'id': ...}}",
                context={"kind": self.kind.value, "id": descriptor.id},
            )
        self._items.append(descriptor)
        self._by_id[descriptor.id] = descriptor

    def remove(self, plugin_id: str) -> PluginDescriptor | None:
        descriptor = self._by_id.pop(plugin_id, None)
        if descriptor is not None:
            self._items = [d for d in self._items if d.id != plugin_id]
        return descriptor

    def get(self, plugin_id: str) -> PluginDescriptor | None:
        return self._by_id.get(plugin_id)

    def ready(self) -> list[PluginDescriptor]:
        return [d for d in self._items if d.is_ready]

    def ids(self) -> list[str]:
        return [d.id for d in self._items]

    def __contains__(self, plugin_id: object) -> bool:
        return plugin_id in self._by_id

    def __iter__(self) -> Iterator[PluginDescriptor]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)
