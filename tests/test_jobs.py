"""Tests for scheduled jobs."""

import asyncio
import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from manasight.cache.coordinator import CacheCoordinator
from manasight.cache.tiers import HotCache
from manasight.db.operations import count_printings
from manasight.jobs.cache_cleanup import run_cleanup, start_cleanup_task
from manasight.jobs.import_cards import identity_coverage, run_import
from manasight.models.card import CardPrinting
from manasight.models.db import Base
from manasight.parsers.scryfall import parse_printings


class TestIdentityCoverage:
    def test_sample_catalog(self, printings: list[CardPrinting]) -> None:
        coverage = identity_coverage(printings)

        assert coverage == {
            "printings": 10,
            "with_oracle_id": 9,
            "identities": 8,
            "derived_identities": 0,
            "ambiguous_groups": 0,
        }

    def test_orphan_printing_gets_derived_identity(self, make_raw_card) -> None:
        coverage = identity_coverage(
            parse_printings([make_raw_card("p1", "Mystery Card", None, "Instant")])
        )

        assert coverage["identities"] == 1
        assert coverage["derived_identities"] == 1

    def test_empty(self) -> None:
        assert identity_coverage([])["identities"] == 0


class TestRunImport:
    async def test_imports_bulk_file(self, tmp_path: Path, raw_cards: list[dict[str, Any]]) -> None:
        """A local bulk file replaces every stored printing."""
        bulk_file = tmp_path / "default_cards.json"
        bulk_file.write_text(json.dumps(raw_cards), encoding="utf-8")

        engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        with (
            patch("manasight.jobs.import_cards.async_session_factory", session_factory),
            patch("manasight.jobs.import_cards.init_db", new=AsyncMock()),
            patch("manasight.jobs.import_cards.download_bulk_data") as download,
        ):
            coverage = await run_import(file_path=bulk_file)

        async with session_factory() as session:
            stored = await count_printings(session)
        await engine.dispose()

        download.assert_not_called()
        assert coverage["identities"] == 8
        assert stored == 10

    async def test_missing_file(self, tmp_path: Path) -> None:
        with (
            patch("manasight.jobs.import_cards.init_db", new=AsyncMock()),
            pytest.raises(FileNotFoundError),
        ):
            await run_import(file_path=tmp_path / "missing.json")


class TestCacheCleanup:
    async def test_run_cleanup_removes_expired(self) -> None:
        now = [0.0]
        hot = HotCache(clock=lambda: now[0])
        coordinator = CacheCoordinator([hot], clock=lambda: now[0])

        await coordinator.put("short", 1, ttl=5)
        await coordinator.put("long", 2, ttl=500)
        now[0] = 60.0

        assert run_cleanup(coordinator) == 1
        assert len(hot) == 1

    async def test_cleanup_task_is_cancellable(self) -> None:
        task = start_cleanup_task(CacheCoordinator([HotCache()]), interval=3600)

        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert task.get_name() == "cache-cleanup"
