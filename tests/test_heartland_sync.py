"""Tests for the Heartland sync Celery tasks."""

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from boutiqueflow.models.sync_log import SyncLog
from boutiqueflow.services.heartland import HeartlandAPIError
from boutiqueflow.services.ingestion import IngestionResult
from boutiqueflow.tasks.heartland_sync import (
    SyncAborted,
    _async_sync_heartland,
    refresh_receipts_cache,
    run_full_sync,
    sync_heartland_data,
)

MODULE = "boutiqueflow.tasks.heartland_sync"
NOW = datetime(2026, 6, 1, 7, 0, tzinfo=UTC)


@pytest.fixture
def mock_session() -> AsyncMock:
    """Create a mock async database session."""
    session = AsyncMock()
    session.add = MagicMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.flush = AsyncMock()
    return session


@pytest.fixture
def stages():
    """Patch every sync stage with a successful mock."""
    inventory = MagicMock()
    inventory.stats.model_dump.return_value = {"totalItemsAnalyzed": 3}
    sales = MagicMock()
    sales.totals.model_dump.return_value = {"transactions": 2}
    listing = MagicMock()
    listing.receipts = [MagicMock(), MagicMock()]

    with (
        patch(f"{MODULE}.ingest_receiving_window", new_callable=AsyncMock) as receiving,
        patch(f"{MODULE}.ingest_sales_window", new_callable=AsyncMock) as sales_window,
        patch(f"{MODULE}.rebuild_customer_profiles", new_callable=AsyncMock) as customers,
        patch(f"{MODULE}.refresh_inventory_analysis", new_callable=AsyncMock) as inventory_stage,
        patch(f"{MODULE}.refresh_sales_analysis", new_callable=AsyncMock) as sales_stage,
        patch(f"{MODULE}.refresh_receipt_listing", new_callable=AsyncMock) as receipts_stage,
    ):
        receiving.return_value = IngestionResult(records_upserted=5)
        sales_window.return_value = IngestionResult(records_upserted=7)
        customers.return_value = IngestionResult(records_upserted=2)
        inventory_stage.return_value = inventory
        sales_stage.return_value = sales
        receipts_stage.return_value = listing
        yield {
            "receiving": receiving,
            "sales": sales_window,
            "customers": customers,
            "inventory": inventory_stage,
            "sales_analysis": sales_stage,
            "receipts": receipts_stage,
        }


def new_results() -> dict:
    return {"errors": []}


class TestRunFullSync:
    """Tests for run_full_sync."""

    async def test_all_stages_run(self, mock_session: AsyncMock, stages: dict) -> None:
        """Test that every stage runs and commits."""
        results = new_results()

        records = await run_full_sync(mock_session, AsyncMock(), results, now=NOW)

        assert records == 14
        for stage in stages.values():
            stage.assert_called_once()
        assert mock_session.commit.call_count == 6
        assert results["receipts"] == 2
        assert results["errors"] == []

    async def test_window_failure_aborts_before_snapshots(
        self, mock_session: AsyncMock, stages: dict
    ) -> None:
        """Test that a failed window fetch writes no snapshot."""
        stages["sales"].side_effect = HeartlandAPIError("down", status_code=503)

        with pytest.raises(SyncAborted, match="sales window fetch failed"):
            await run_full_sync(mock_session, AsyncMock(), new_results(), now=NOW)

        stages["customers"].assert_not_called()
        stages["inventory"].assert_not_called()
        stages["sales_analysis"].assert_not_called()
        mock_session.rollback.assert_called_once()

    async def test_inventory_fetch_failure_aborts(
        self, mock_session: AsyncMock, stages: dict
    ) -> None:
        """Test that a failed live inventory fetch aborts the run."""
        stages["inventory"].side_effect = HeartlandAPIError("timeout")

        with pytest.raises(SyncAborted, match="Live inventory"):
            await run_full_sync(mock_session, AsyncMock(), new_results(), now=NOW)

        stages["sales_analysis"].assert_not_called()

    async def test_stage_errors_collected(self, mock_session: AsyncMock, stages: dict) -> None:
        """Test that per-record errors are collected for a partial run."""
        stages["receiving"].return_value = IngestionResult(
            records_upserted=4, records_skipped=1, errors=["receipt 501: timeout"]
        )
        results = new_results()

        await run_full_sync(mock_session, AsyncMock(), results, now=NOW)

        assert results["errors"] == ["receipt 501: timeout"]

    async def test_receipt_listing_failure_is_not_fatal(
        self, mock_session: AsyncMock, stages: dict
    ) -> None:
        """Test that the listing cache failing leaves the analyses in place."""
        stages["receipts"].side_effect = HeartlandAPIError("timeout")
        results = new_results()

        await run_full_sync(mock_session, AsyncMock(), results, now=NOW)

        assert "Receipt listing failed" in results["errors"][0]
        assert "receipts" not in results


def session_factory(session: AsyncMock) -> MagicMock:
    factory = MagicMock()
    factory.__aenter__ = AsyncMock(return_value=session)
    factory.__aexit__ = AsyncMock(return_value=None)
    return factory


def mock_engine() -> MagicMock:
    engine = MagicMock()
    engine.dispose = AsyncMock()
    return engine


class TestAsyncSyncHeartland:
    """Tests for _async_sync_heartland."""

    @patch(f"{MODULE}.finish_sync_run", new_callable=AsyncMock)
    @patch(f"{MODULE}.run_full_sync", new_callable=AsyncMock)
    @patch(f"{MODULE}.start_sync_run", new_callable=AsyncMock)
    @patch(f"{MODULE}.HeartlandClient")
    @patch(f"{MODULE}.create_async_engine")
    async def test_successful_sync(
        self,
        mock_engine_cls: MagicMock,
        mock_client_cls: MagicMock,
        mock_start: AsyncMock,
        mock_run: AsyncMock,
        mock_finish: AsyncMock,
        mock_session: AsyncMock,
    ) -> None:
        """Test a scheduled sync that completes cleanly."""
        mock_engine_cls.return_value = mock_engine()
        mock_client = AsyncMock()
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)
        mock_client_cls.return_value = mock_client
        run = SyncLog(id=uuid.uuid4(), sync_type="full", status="running")
        mock_start.return_value = run
        mock_run.return_value = 14

        with patch(
            f"{MODULE}.async_sessionmaker", return_value=lambda: session_factory(mock_session)
        ):
            result = await _async_sync_heartland()

        assert result["status"] == "success"
        assert result["records_synced"] == 14
        assert result["run_id"] == str(run.id)
        finish_args = mock_finish.call_args
        assert finish_args[0][2].value == "success"
        assert finish_args[1]["records_synced"] == 14

    @patch(f"{MODULE}.finish_sync_run", new_callable=AsyncMock)
    @patch(f"{MODULE}.run_full_sync", new_callable=AsyncMock)
    @patch(f"{MODULE}.start_sync_run", new_callable=AsyncMock)
    @patch(f"{MODULE}.HeartlandClient")
    @patch(f"{MODULE}.create_async_engine")
    async def test_partial_sync(
        self,
        mock_engine_cls: MagicMock,
        mock_client_cls: MagicMock,
        mock_start: AsyncMock,
        mock_run: AsyncMock,
        mock_finish: AsyncMock,
        mock_session: AsyncMock,
    ) -> None:
        """Test that collected errors mark the run partial."""
        mock_engine_cls.return_value = mock_engine()
        mock_client = AsyncMock()
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)
        mock_client_cls.return_value = mock_client
        mock_start.return_value = SyncLog(id=uuid.uuid4(), sync_type="full", status="running")

        async def run_with_errors(session, client, results):
            results["errors"].append("receipt 501: timeout")
            return 3

        mock_run.side_effect = run_with_errors

        with patch(
            f"{MODULE}.async_sessionmaker", return_value=lambda: session_factory(mock_session)
        ):
            result = await _async_sync_heartland()

        assert result["status"] == "partial"
        assert mock_finish.call_args[1]["error_message"] == "receipt 501: timeout"

    @patch(f"{MODULE}.finish_sync_run", new_callable=AsyncMock)
    @patch(f"{MODULE}.run_full_sync", new_callable=AsyncMock)
    @patch(f"{MODULE}.start_sync_run", new_callable=AsyncMock)
    @patch(f"{MODULE}.HeartlandClient")
    @patch(f"{MODULE}.create_async_engine")
    async def test_aborted_sync(
        self,
        mock_engine_cls: MagicMock,
        mock_client_cls: MagicMock,
        mock_start: AsyncMock,
        mock_run: AsyncMock,
        mock_finish: AsyncMock,
        mock_session: AsyncMock,
    ) -> None:
        """Test that an aborted run is marked failed."""
        mock_engine_cls.return_value = mock_engine()
        mock_client = AsyncMock()
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)
        mock_client_cls.return_value = mock_client
        mock_start.return_value = SyncLog(id=uuid.uuid4(), sync_type="full", status="running")
        mock_run.side_effect = SyncAborted("receiving window fetch failed: down")

        with patch(
            f"{MODULE}.async_sessionmaker", return_value=lambda: session_factory(mock_session)
        ):
            result = await _async_sync_heartland()

        assert result["status"] == "failed"
        assert "receiving window fetch failed" in result["errors"][0]
        assert mock_finish.call_args[0][2].value == "failed"

    @patch(f"{MODULE}.start_sync_run", new_callable=AsyncMock)
    @patch(f"{MODULE}.create_async_engine")
    async def test_skipped_when_running(
        self,
        mock_engine_cls: MagicMock,
        mock_start: AsyncMock,
        mock_session: AsyncMock,
    ) -> None:
        """Test that a scheduled run yields to one already in progress."""
        engine = mock_engine()
        mock_engine_cls.return_value = engine
        mock_start.return_value = None

        with patch(
            f"{MODULE}.async_sessionmaker", return_value=lambda: session_factory(mock_session)
        ):
            result = await _async_sync_heartland()

        assert result["status"] == "skipped"
        engine.dispose.assert_called_once()

    @patch(f"{MODULE}.get_sync_run", new_callable=AsyncMock)
    @patch(f"{MODULE}.create_async_engine")
    async def test_triggered_run_loaded_by_id(
        self,
        mock_engine_cls: MagicMock,
        mock_get_run: AsyncMock,
        mock_session: AsyncMock,
    ) -> None:
        """Test that a triggered run uses the run record created by the API."""
        mock_engine_cls.return_value = mock_engine()
        mock_get_run.return_value = None
        run_id = uuid.uuid4()

        with patch(
            f"{MODULE}.async_sessionmaker", return_value=lambda: session_factory(mock_session)
        ):
            result = await _async_sync_heartland(str(run_id))

        mock_get_run.assert_called_once_with(mock_session, run_id)
        assert result["status"] == "skipped"


class TestCeleryTasks:
    """Tests for the Celery task wrappers."""

    @patch(f"{MODULE}.asyncio.run")
    def test_sync_task_calls_async_sync(self, mock_asyncio_run: MagicMock) -> None:
        """Test that the sync task runs the async implementation."""
        mock_asyncio_run.return_value = {
            "status": "success",
            "records_synced": 14,
            "errors": [],
        }

        result = sync_heartland_data.run()

        assert result["status"] == "success"
        mock_asyncio_run.assert_called_once()

    @patch(f"{MODULE}.asyncio.run")
    def test_receipts_task(self, mock_asyncio_run: MagicMock) -> None:
        """Test that the receipt cache task runs the async implementation."""
        mock_asyncio_run.return_value = {"status": "success", "receipts": 20, "errors": []}

        result = refresh_receipts_cache.run()

        assert result["receipts"] == 20
