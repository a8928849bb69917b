"""
Entity reconciler.

Maps provider-specific identifiers onto canonical teams, competitions and
players. Resolution order for ``find_or_create``:

  1. external ref ``(entity_type, provider, external_id)``
  2. canonical entity by natural key (name), linking the missing ref
  3. new canonical entity plus its ref

Each attempt is one unit of work: the entity and its ref commit together or
not at all. Concurrent creators of the same entity collide on the unique
name / ref constraints; the loser rolls back and re-runs the lookup.
"""
from __future__ import annotations

from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ingest.errors import ReconciliationConflict
from shared.models.domain import CompetitionDTO, PlayerDTO, TeamDTO
from shared.models.enums import EntityType, Provider
from shared.models.orm import CompetitionORM, ExternalRefORM, PlayerORM, SeasonORM, TeamORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import RECONCILIATION_RESULTS

logger = get_logger(__name__)

Candidate = Union[TeamDTO, CompetitionDTO, PlayerDTO]
CanonicalEntity = Union[TeamORM, CompetitionORM, PlayerORM]

ENTITY_MODELS: dict[EntityType, type[CanonicalEntity]] = {
    EntityType.TEAM: TeamORM,
    EntityType.COMPETITION: CompetitionORM,
    EntityType.PLAYER: PlayerORM,
}


def _natural_key(candidate: Candidate) -> str:
    return " ".join(candidate.name.split())


class EntityReconciler:
    """Idempotent find-or-create over external refs."""

    def __init__(self, db: DatabaseManager, max_attempts: int = 3) -> None:
        self._db = db
        self._max_attempts = max_attempts

    # ── find-or-create ──────────────────────────────────────────────────

    async def find_or_create(
        self,
        entity_type: EntityType,
        provider: Provider,
        external_id: Optional[str],
        candidate: Candidate,
    ) -> CanonicalEntity:
        """
        Resolve a provider entity to its canonical row, creating it if needed.

        Repeated calls with the same ``(provider, external_id)`` always return
        the same canonical id. Without an ``external_id`` only the natural-key
        lookup and creation steps run.

        Raises:
            ReconciliationConflict: if every attempt collided with a concurrent writer.
        """
        key = _natural_key(candidate)
        for attempt in range(1, self._max_attempts + 1):
            try:
                async with self._db.unit_of_work() as uow:
                    entity, result = await self._resolve(
                        uow.session, entity_type, provider, external_id, key, candidate
                    )
            except IntegrityError as exc:
                RECONCILIATION_RESULTS.labels(entity_type=entity_type.value, result="conflict").inc()
                logger.info(
                    "reconciliation_conflict_retry",
                    entity_type=entity_type.value,
                    provider=provider.value,
                    external_id=external_id,
                    name=key,
                    attempt=attempt,
                    error=str(exc.orig) if exc.orig else str(exc),
                )
                continue
            RECONCILIATION_RESULTS.labels(entity_type=entity_type.value, result=result).inc()
            if result != "ref_hit":
                logger.info(
                    "entity_reconciled",
                    entity_type=entity_type.value,
                    provider=provider.value,
                    external_id=external_id,
                    entity_id=entity.id,
                    result=result,
                )
            return entity
        raise ReconciliationConflict(entity_type.value, key, self._max_attempts)

    async def _resolve(
        self,
        session: AsyncSession,
        entity_type: EntityType,
        provider: Provider,
        external_id: Optional[str],
        key: str,
        candidate: Candidate,
    ) -> tuple[CanonicalEntity, str]:
        model = ENTITY_MODELS[entity_type]

        stale_ref: Optional[ExternalRefORM] = None
        if external_id:
            ref = await self._find_ref(session, entity_type, provider, external_id)
            if ref is not None:
                entity = await session.get(model, ref.entity_id)
                if entity is not None:
                    return entity, "ref_hit"
                # canonical row is gone; re-point the ref instead of adding a second one
                stale_ref = ref

        entity = await session.scalar(select(model).where(model.name == key))
        result = "name_link"
        if entity is None:
            entity = model(**candidate.model_dump(exclude={"external_id", "name"}, exclude_none=True), name=key)
            session.add(entity)
            await session.flush()
            result = "created"

        if external_id:
            if stale_ref is not None:
                stale_ref.entity_id = entity.id
                await session.flush()
            else:
                await self._link(session, entity_type, entity.id, provider, external_id)
        return entity, result

    # ── External refs ───────────────────────────────────────────────────

    @staticmethod
    async def _find_ref(
        session: AsyncSession, entity_type: EntityType, provider: Provider, external_id: str
    ) -> Optional[ExternalRefORM]:
        return await session.scalar(
            select(ExternalRefORM).where(
                ExternalRefORM.entity_type == entity_type.value,
                ExternalRefORM.provider == provider.value,
                ExternalRefORM.external_id == external_id,
            )
        )

    async def _link(
        self,
        session: AsyncSession,
        entity_type: EntityType,
        entity_id: int,
        provider: Provider,
        external_id: str,
    ) -> bool:
        """Add a ref unless the entity already has one for this provider. Returns True if added."""
        existing = await session.scalar(
            select(ExternalRefORM).where(
                ExternalRefORM.entity_type == entity_type.value,
                ExternalRefORM.entity_id == entity_id,
                ExternalRefORM.provider == provider.value,
            )
        )
        if existing is not None:
            if existing.external_id != external_id:
                logger.warning(
                    "external_ref_mismatch",
                    entity_type=entity_type.value,
                    entity_id=entity_id,
                    provider=provider.value,
                    stored=existing.external_id,
                    incoming=external_id,
                )
            return False
        session.add(ExternalRefORM(
            entity_type=entity_type.value,
            entity_id=entity_id,
            provider=provider.value,
            external_id=external_id,
        ))
        await session.flush()
        return True

    async def link(
        self, entity_type: EntityType, entity_id: int, provider: Provider, external_id: str
    ) -> bool:
        """Store a mapping for an existing entity; an existing mapping for the provider is kept."""
        try:
            async with self._db.unit_of_work() as uow:
                return await self._link(uow.session, entity_type, entity_id, provider, external_id)
        except IntegrityError:
            logger.warning(
                "external_ref_taken",
                entity_type=entity_type.value,
                provider=provider.value,
                external_id=external_id,
            )
            return False

    async def external_id(
        self, entity_type: EntityType, internal_id: int, provider: Provider
    ) -> Optional[str]:
        """Reverse lookup: the provider's id for a canonical entity."""
        async with self._db.read_session() as session:
            return await session.scalar(
                select(ExternalRefORM.external_id).where(
                    ExternalRefORM.entity_type == entity_type.value,
                    ExternalRefORM.entity_id == internal_id,
                    ExternalRefORM.provider == provider.value,
                )
            )

    async def internal_id(
        self, entity_type: EntityType, provider: Provider, external_id: str
    ) -> Optional[int]:
        async with self._db.read_session() as session:
            ref = await self._find_ref(session, entity_type, provider, external_id)
            return ref.entity_id if ref is not None else None

    # ── Seasons ─────────────────────────────────────────────────────────

    async def find_or_create_season(self, name: str, is_current: bool = False) -> SeasonORM:
        """Seasons have no provider ids; the name (e.g. "2024") is the key everywhere."""
        for _ in range(self._max_attempts):
            try:
                async with self._db.unit_of_work() as uow:
                    season = await uow.session.scalar(select(SeasonORM).where(SeasonORM.name == name))
                    if season is None:
                        season = SeasonORM(name=name, is_current=is_current)
                        uow.session.add(season)
                        await uow.flush()
                        logger.info("season_created", season=name, season_id=season.id)
                    return season
            except IntegrityError:
                RECONCILIATION_RESULTS.labels(entity_type="season", result="conflict").inc()
        raise ReconciliationConflict("season", name, self._max_attempts)
