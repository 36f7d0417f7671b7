"""
Integration tests for the service container over the SQLite store.

Tests cover:
- Container wiring from configuration
- Signing, numbering and bulk marking persisted across restarts
"""

import tempfile
from pathlib import Path

import pytest

from civic.civic_store.batch import Recipient
from civic.civic_store.config import LedgerConfig, ServiceConfig, StoreBackend, StoreConfig
from civic.civic_store.ledger import SignatureRequest
from civic.civic_store.notify import EmailResult
from civic.civic_store.services import CivicServices
from civic.civic_store.store import SqliteDocumentStore


class AlwaysOkSender:
    async def send(self, message):
        return EmailResult(success=True)


class TestSqliteWorkflows:
    """End-to-end flows on a file-backed store."""

    @pytest.fixture
    def config(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield ServiceConfig(
                store=StoreConfig(
                    backend=StoreBackend.SQLITE,
                    sqlite_path=str(Path(tmpdir) / "civic.db"),
                ),
                ledger=LedgerConfig(number_prefix="MB"),
            )

    def _services(self, config):
        services = CivicServices.from_config(config)
        services.email_sender = AlwaysOkSender()
        services.bulk.sender = services.email_sender
        return services

    @pytest.mark.asyncio
    async def test_from_config_uses_sqlite(self, config):
        services = CivicServices.from_config(config)
        assert isinstance(services.store, SqliteDocumentStore)
        assert services.allocator.prefix == "MB"

    @pytest.mark.asyncio
    async def test_state_survives_restart(self, config):
        services = self._services(config)
        await services.start()

        pid = await services.petitions.create_petition({"title": "Parks", "goal": 10})
        await services.ledger.sign(pid, SignatureRequest(name="Ada", email="ada@example.com"))
        first_number = await services.allocator.reserve(2025)
        volunteer_id = await services.applications.submit_volunteer_application(
            {"name": "Grace", "email": "g@example.com"}
        )
        report = await services.bulk.send(
            "volunteers", [Recipient(volunteer_id, "g@example.com")], "S", "B"
        )
        await services.stop()

        restarted = self._services(config)
        await restarted.start()

        petition = await restarted.repos.petitions.get(pid)
        volunteer = await restarted.repos.volunteers.get(volunteer_id)
        second_number = await restarted.allocator.reserve(2025)
        await restarted.stop()

        assert first_number == "MB-2025-001"
        assert second_number == "MB-2025-002"
        assert petition.current_signatures == 1
        assert petition.signatures[0].signed_at is not None
        assert report.marked_ids == [volunteer_id]
        assert volunteer.emailed_at is not None
