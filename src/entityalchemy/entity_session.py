# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Entity session: the single place where the pipeline is wired together.

Declaration registry -> metadata builder -> metadata validator (gate) ->
persistence and removal planners -> plan executor -> statement executor.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from .broadcaster import Broadcaster
from .declarations import DeclarationRegistry, get_default_registry
from .entity_metadata import EntityMetadata, EntityMetadataGraph
from .errors import MissingDeleteDateColumnError, MissingIdentifierError
from .executor import InMemoryStatementExecutor, StatementExecutor
from .metadata_builder import BuilderOptions, EntityMetadataBuilder
from .metadata_validator import EntityMetadataValidator
from .naming import NamingStrategy
from .persistence import PersistencePlanner, PersistPlanExecutor
from .removal import RemovalPlanner
from .snapshot import SnapshotLoader

logger = logging.getLogger(__name__)


def build_metadata_graph(
    registry: Optional[DeclarationRegistry] = None,
    *,
    naming_strategy: Optional[NamingStrategy] = None,
    tables_prefix: Optional[str] = None,
) -> EntityMetadataGraph:
    """Build, validate and freeze the metadata graph of ``registry``."""
    registry = registry if registry is not None else get_default_registry()
    builder = EntityMetadataBuilder(naming_strategy, BuilderOptions(tables_prefix=tables_prefix))
    metadatas = builder.build(registry)
    EntityMetadataValidator().validate_many(metadatas)
    for metadata in metadatas:
        metadata.freeze()
    return EntityMetadataGraph(metadatas)


class EntitySession:
    """
    Saves and removes entity instances through cascade plans.

    Either call ``save``/``remove`` directly, or stage instances with ``add``
    and ``delete`` and write them with ``flush`` (or the ``begin`` block).

    :class: EntitySession
    :synopsis: Persistence entry point over one validated metadata graph
    """

    def __init__(
        self,
        registry: Optional[DeclarationRegistry] = None,
        executor: Optional[StatementExecutor] = None,
        *,
        graph: Optional[EntityMetadataGraph] = None,
        naming_strategy: Optional[NamingStrategy] = None,
        tables_prefix: Optional[str] = None,
        strict_cascades: bool = False,
        subscribers: Sequence[Any] = (),
    ) -> None:
        self.graph = graph if graph is not None else build_metadata_graph(
            registry, naming_strategy=naming_strategy, tables_prefix=tables_prefix
        )
        self.executor: StatementExecutor = (
            executor if executor is not None else InMemoryStatementExecutor.from_metadatas(self.graph)
        )
        self.broadcaster = Broadcaster(self.graph, subscribers)
        loader = SnapshotLoader(self.executor)
        self.planner = PersistencePlanner(self.graph, loader, strict_cascades=strict_cascades)
        self.removal_planner = RemovalPlanner(self.graph, loader)
        self.plan_executor = PersistPlanExecutor(self.executor, self.broadcaster)

        self._new: List[Any] = []
        self._deleted: List[Any] = []
        self._flushing = False

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def get_metadata(self, target: Any) -> EntityMetadata:
        return self.graph.get_metadata(target)

    def has_metadata(self, target: Any) -> bool:
        return self.graph.has_metadata(target)

    def add_subscriber(self, subscriber: Any) -> None:
        self.broadcaster.add_subscriber(subscriber)

    # ------------------------------------------------------------------
    # Direct operations
    # ------------------------------------------------------------------

    async def save(self, instance: Any) -> Any:
        """
        Insert or update ``instance`` and everything its relations cascade to.

        Related rows dropped from cascade-remove relations are removed and rows
        detached from inverse relations get their foreign key nulled.
        """
        metadata = self.graph.find_metadata_for_instance(instance)

        # @@ STEP 1: Diff persisted relations before the instance is rewritten
        removal_plan = None
        if metadata.has_id(instance):
            removal_plan = await self.removal_planner.compute_removed_relations(metadata, instance)

        # @@ STEP 2: Plan and execute
        plan = await self.planner.plan(metadata, instance)
        await self.plan_executor.execute(plan, removal_plan)
        logger.debug(f"Saved {metadata.name} {metadata.get_entity_id_map(instance)}")
        return instance

    async def save_all(self, instances: Sequence[Any]) -> List[Any]:
        return [await self.save(instance) for instance in instances]

    async def remove(self, instance: Any) -> Any:
        """Delete ``instance`` and everything its relations cascade removal to."""
        metadata = self.graph.find_metadata_for_instance(instance)
        if not metadata.has_id(instance):
            raise MissingIdentifierError(metadata.name, "remove")
        plan = await self.removal_planner.plan_remove(metadata, instance)
        await self.plan_executor.execute_removal(plan)
        return instance

    async def soft_remove(self, instance: Any) -> Any:
        """Stamp the delete date column of ``instance``; its row and links stay in place."""
        return await self._set_delete_date(instance, "soft-remove", datetime.now(timezone.utc))

    async def recover(self, instance: Any) -> Any:
        """Clear the delete date column set by ``soft_remove``."""
        return await self._set_delete_date(instance, "recover", None)

    async def _set_delete_date(self, instance: Any, action: str, value: Optional[datetime]) -> Any:
        metadata = self.graph.find_metadata_for_instance(instance)
        if metadata.delete_date_column is None:
            raise MissingDeleteDateColumnError(metadata.name, action)
        if not metadata.has_id(instance):
            raise MissingIdentifierError(metadata.name, action)
        await self.plan_executor.execute_delete_date(metadata, instance, value)
        return instance

    async def load(self, target: Any, id_map: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Persisted row of ``target`` with ``id_map`` merged over its table chain."""
        metadata = self.graph.get_metadata(target)
        return await self.planner.loader.load_row(metadata, id_map)

    async def broadcast_loaded(self, instance: Any) -> None:
        """Fire ``after_load`` on ``instance`` and its loaded relations, related instances first."""
        metadata = self.graph.find_metadata_for_instance(instance)
        await self.broadcaster.broadcast_load_events(metadata, instance)

    # ------------------------------------------------------------------
    # Staged operations
    # ------------------------------------------------------------------

    def add(self, instance: Any) -> None:
        """Stage ``instance`` for saving at the next flush."""
        if any(staged is instance for staged in self._deleted):
            self._deleted = [staged for staged in self._deleted if staged is not instance]
        if not any(staged is instance for staged in self._new):
            self._new.append(instance)

    def add_all(self, instances: Sequence[Any]) -> None:
        for instance in instances:
            self.add(instance)

    def delete(self, instance: Any) -> None:
        """Stage ``instance`` for removal at the next flush."""
        self._new = [staged for staged in self._new if staged is not instance]
        if not any(staged is instance for staged in self._deleted):
            self._deleted.append(instance)

    @property
    def pending(self) -> List[Any]:
        return list(self._new) + list(self._deleted)

    async def flush(self) -> None:
        """Save staged instances, then remove staged deletions, in staging order."""
        if self._flushing:
            return

        self._flushing = True
        try:
            new, deleted = list(self._new), list(self._deleted)
            for instance in new:
                await self.save(instance)
                self._new = [staged for staged in self._new if staged is not instance]
            for instance in deleted:
                await self.remove(instance)
                self._deleted = [staged for staged in self._deleted if staged is not instance]
        finally:
            self._flushing = False

    def rollback(self) -> None:
        """Drop staged instances without writing them."""
        self._new.clear()
        self._deleted.clear()

    @asynccontextmanager
    async def begin(self) -> AsyncIterator["EntitySession"]:
        """
        Batch block: stage operations inside, flushed together on exit.

        Any error raised in the block or by the flush drops the staged
        instances and propagates unchanged.
        """
        try:
            yield self
            await self.flush()
        except Exception:
            self.rollback()
            raise

    async def __aenter__(self) -> "EntitySession":
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc_type is None:
            await self.flush()
        else:
            self.rollback()


class SessionFactory:
    """
    Builds the metadata graph once and hands out sessions sharing it.

    :class: SessionFactory
    :synopsis: Shared read-only metadata graph across sessions
    """

    def __init__(
        self,
        registry: Optional[DeclarationRegistry] = None,
        executor: Optional[StatementExecutor] = None,
        *,
        naming_strategy: Optional[NamingStrategy] = None,
        tables_prefix: Optional[str] = None,
        **session_defaults: Any,
    ) -> None:
        self.graph = build_metadata_graph(registry, naming_strategy=naming_strategy, tables_prefix=tables_prefix)
        self.executor = executor if executor is not None else InMemoryStatementExecutor.from_metadatas(self.graph)
        self.session_defaults = session_defaults

    def create_session(self, **overrides: Any) -> EntitySession:
        options = {**self.session_defaults, **overrides}
        executor = options.pop("executor", self.executor)
        return EntitySession(executor=executor, graph=self.graph, **options)

    def __call__(self, **overrides: Any) -> EntitySession:
        return self.create_session(**overrides)

    @asynccontextmanager
    async def session_scope(self, **overrides: Any) -> AsyncIterator[EntitySession]:
        """Session whose staged operations are flushed on success and dropped on error."""
        session = self.create_session(**overrides)
        async with session.begin():
            yield session


__all__ = ["EntitySession", "SessionFactory", "build_metadata_graph"]
