# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Lifecycle broadcaster: listener methods and subscriber hooks around writes.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .constants import EventKind, SubscriberConstants
from .entity_metadata import NOT_LOADED, ColumnMetadata, EntityMetadata, EntityMetadataGraph

logger = logging.getLogger(__name__)


@dataclass
class EntityEvent:
    """Payload handed to subscriber hooks."""

    event: EventKind
    entity: Any
    metadata: EntityMetadata
    entity_id: Optional[Dict[str, Any]] = None
    updated_columns: Tuple[ColumnMetadata, ...] = field(default_factory=tuple)


class Broadcaster:
    """
    Invokes listener methods declared on entity classes, then subscriber hooks.

    A subscriber is any object with ``before_insert``/``after_insert``/... methods
    and an optional ``listen_to()`` returning the class (or entity name) it is
    interested in. Returned coroutines are awaited together before ``broadcast``
    returns.

    :class: Broadcaster
    :synopsis: Lifecycle broadcaster collaborator
    """

    def __init__(self, graph: Optional[EntityMetadataGraph] = None, subscribers: Sequence[Any] = ()) -> None:
        self.graph = graph
        self.subscribers: List[Any] = list(subscribers)

    def add_subscriber(self, subscriber: Any) -> None:
        self.subscribers.append(subscriber)

    @staticmethod
    def _listens_to(subscriber: Any, metadata: EntityMetadata, instance: Any) -> bool:
        listen_to = getattr(subscriber, SubscriberConstants.LISTEN_TO, None)
        if listen_to is None:
            return True
        target = listen_to() if callable(listen_to) and not isinstance(listen_to, type) else listen_to
        if target is None:
            return True
        if isinstance(target, type):
            return isinstance(instance, target)
        current: Optional[EntityMetadata] = metadata
        while current is not None:
            if current.name == target:
                return True
            current = current.parent_entity_metadata
        return False

    async def broadcast(
        self,
        event: EventKind,
        metadata: EntityMetadata,
        instance: Any,
        *,
        entity_id: Optional[Dict[str, Any]] = None,
        updated_columns: Sequence[ColumnMetadata] = (),
    ) -> None:
        pending = []

        # @@ STEP 1: Listener methods of the instance
        for listener in metadata.listeners:
            if listener.event == event and listener.is_allowed(instance):
                result = getattr(instance, listener.property_name)()
                if inspect.isawaitable(result):
                    pending.append(result)

        # @@ STEP 2: Subscriber hooks
        hook_name = SubscriberConstants.HOOKS[event]
        payload: Optional[EntityEvent] = None
        for subscriber in self.subscribers:
            hook = getattr(subscriber, hook_name, None)
            if hook is None or not self._listens_to(subscriber, metadata, instance):
                continue
            if payload is None:
                payload = EntityEvent(
                    event=event,
                    entity=instance,
                    metadata=metadata,
                    entity_id=entity_id,
                    updated_columns=tuple(updated_columns),
                )
            result = hook(payload)
            if inspect.isawaitable(result):
                pending.append(result)

        if pending:
            await asyncio.gather(*pending)

    async def broadcast_load_events(
        self, metadata: EntityMetadata, instance: Any, _visited: Optional[Set[int]] = None
    ) -> None:
        """``afterLoad`` for loaded relation values first, then ``instance``."""
        visited = _visited if _visited is not None else set()
        if id(instance) in visited:
            return
        visited.add(id(instance))

        for relation in metadata.relations:
            related = relation.get_related_instances(instance)
            if related is NOT_LOADED:
                continue
            for item in related:
                if item is None:
                    continue
                item_metadata = (
                    self.graph.find_metadata_for_instance(item)
                    if self.graph is not None
                    else relation.inverse_entity_metadata
                )
                await self.broadcast_load_events(item_metadata, item, visited)

        await self.broadcast(EventKind.AFTER_LOAD, metadata, instance)


__all__ = ["EntityEvent", "Broadcaster"]
