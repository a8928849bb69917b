"""Entity reconciliation: idempotence, cross-provider linking and concurrent creation."""
from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select

from ingest.reconciliation.reconciler import EntityReconciler
from shared.models.domain import CompetitionDTO, PlayerDTO, TeamDTO
from shared.models.enums import EntityType, Provider
from shared.models.orm import CompetitionORM, ExternalRefORM, PlayerORM, TeamORM


async def count(db, model) -> int:
    async with db.read_session() as session:
        return await session.scalar(select(func.count()).select_from(model))


@pytest.mark.asyncio
async def test_repeated_calls_return_same_entity(db) -> None:
    reconciler = EntityReconciler(db)
    candidate = TeamDTO(external_id="57", name="Arsenal FC", short_name="Arsenal")
    first = await reconciler.find_or_create(EntityType.TEAM, Provider.FOOTBALL_DATA, "57", candidate)
    second = await reconciler.find_or_create(EntityType.TEAM, Provider.FOOTBALL_DATA, "57", candidate)
    assert first.id == second.id
    assert first.short_name == "Arsenal"
    assert await count(db, TeamORM) == 1
    assert await count(db, ExternalRefORM) == 1


@pytest.mark.asyncio
async def test_second_provider_links_to_existing_entity(db) -> None:
    reconciler = EntityReconciler(db)
    team = await reconciler.find_or_create(
        EntityType.TEAM, Provider.FOOTBALL_DATA, "57", TeamDTO(name="Arsenal FC")
    )
    same = await reconciler.find_or_create(
        EntityType.TEAM, Provider.API_FOOTBALL, "42", TeamDTO(name="Arsenal FC")
    )
    assert same.id == team.id
    assert await count(db, TeamORM) == 1
    assert await reconciler.external_id(EntityType.TEAM, team.id, Provider.API_FOOTBALL) == "42"
    assert await reconciler.internal_id(EntityType.TEAM, Provider.FOOTBALL_DATA, "57") == team.id


@pytest.mark.asyncio
async def test_natural_key_ignores_whitespace_noise(db) -> None:
    reconciler = EntityReconciler(db)
    a = await reconciler.find_or_create(EntityType.TEAM, Provider.FOOTBALL_DATA, "1", TeamDTO(name="Aston  Villa "))
    b = await reconciler.find_or_create(EntityType.TEAM, Provider.API_FOOTBALL, "66", TeamDTO(name="Aston Villa"))
    assert a.id == b.id
    assert a.name == "Aston Villa"


@pytest.mark.asyncio
async def test_without_external_id_only_natural_key_is_used(db) -> None:
    reconciler = EntityReconciler(db)
    a = await reconciler.find_or_create(EntityType.PLAYER, Provider.THESPORTSDB, None, PlayerDTO(name="Bukayo Saka"))
    b = await reconciler.find_or_create(EntityType.PLAYER, Provider.THESPORTSDB, None, PlayerDTO(name="Bukayo Saka"))
    assert a.id == b.id
    assert await count(db, PlayerORM) == 1
    assert await count(db, ExternalRefORM) == 0


@pytest.mark.asyncio
async def test_concurrent_creation_yields_one_entity(db) -> None:
    reconciler = EntityReconciler(db, max_attempts=5)
    results = await asyncio.gather(
        reconciler.find_or_create(EntityType.TEAM, Provider.FOOTBALL_DATA, "61", TeamDTO(name="Chelsea FC")),
        reconciler.find_or_create(EntityType.TEAM, Provider.API_FOOTBALL, "49", TeamDTO(name="Chelsea FC")),
    )
    assert results[0].id == results[1].id
    assert await count(db, TeamORM) == 1
    assert await count(db, ExternalRefORM) == 2


@pytest.mark.asyncio
async def test_existing_mapping_is_kept(db) -> None:
    reconciler = EntityReconciler(db)
    team = await reconciler.find_or_create(EntityType.TEAM, Provider.FOOTBALL_DATA, "57", TeamDTO(name="Arsenal FC"))
    assert await reconciler.link(EntityType.TEAM, team.id, Provider.FOOTBALL_DATA, "999") is False
    assert await reconciler.external_id(EntityType.TEAM, team.id, Provider.FOOTBALL_DATA) == "57"


@pytest.mark.asyncio
async def test_link_adds_mapping_for_competition(db, factory) -> None:
    reconciler = EntityReconciler(db)
    competition = await factory.competition()
    assert await reconciler.link(EntityType.COMPETITION, competition.id, Provider.FOOTBALL_DATA, "PL") is True
    assert await reconciler.external_id(EntityType.COMPETITION, competition.id, Provider.FOOTBALL_DATA) == "PL"
    assert await reconciler.external_id(EntityType.COMPETITION, competition.id, Provider.API_FOOTBALL) is None


@pytest.mark.asyncio
async def test_stale_ref_is_repointed(db, factory) -> None:
    reconciler = EntityReconciler(db)
    await factory.ref(EntityType.COMPETITION, 999, Provider.FOOTBALL_DATA, "PL")
    competition = await reconciler.find_or_create(
        EntityType.COMPETITION, Provider.FOOTBALL_DATA, "PL", CompetitionDTO(name="Premier League", code="PL")
    )
    assert await reconciler.internal_id(EntityType.COMPETITION, Provider.FOOTBALL_DATA, "PL") == competition.id
    assert await count(db, ExternalRefORM) == 1
    assert await count(db, CompetitionORM) == 1


@pytest.mark.asyncio
async def test_season_find_or_create_is_idempotent(db) -> None:
    reconciler = EntityReconciler(db)
    a = await reconciler.find_or_create_season("2024", is_current=True)
    b = await reconciler.find_or_create_season("2024")
    assert a.id == b.id
    assert b.is_current is True
