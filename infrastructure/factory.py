from __future__ import annotations

import logging
from dataclasses import dataclass

from application.orchestrator import TransferOrchestrator
from config import Settings
from domain.repositories import IdentityRepository, LedgerStore, RateSource
from infrastructure.db.identity_repository_sqlite import SqliteIdentityRepository
from infrastructure.db.ledger_store_sqlite import SqliteLedgerStore, SqliteRateSource
from infrastructure.http.ledger_client import HttpLedgerStore, HttpRateSource, LedgerApiClient
from infrastructure.memory.identity_repository import InMemoryIdentityRepository
from infrastructure.memory.ledger_store import InMemoryLedgerStore, InMemoryRateSource

logger = logging.getLogger(__name__)


@dataclass
class Backends:
    ledger: LedgerStore
    rate_source: RateSource
    identity_repo: IdentityRepository


def build_backends(settings: Settings) -> Backends:
    """Instantiate the ledger, rate source and identity mapping for `settings`."""

    if settings.ledger_backend == "sqlite":
        ledger = SqliteLedgerStore(settings.db_path)
        backends = Backends(
            ledger=ledger,
            rate_source=SqliteRateSource(settings.db_path, settings.fx_rate),
            identity_repo=SqliteIdentityRepository(settings.db_path, ledger),
        )
    elif settings.ledger_backend == "http":
        client = LedgerApiClient(
            settings.ledger_api_url,
            token=settings.ledger_api_token,
            timeout=settings.ledger_api_timeout,
        )
        ledger = HttpLedgerStore(client)
        # Chat bindings stay local even when the ledger is remote.
        backends = Backends(
            ledger=ledger,
            rate_source=HttpRateSource(client),
            identity_repo=SqliteIdentityRepository(settings.db_path, ledger),
        )
    else:
        ledger = InMemoryLedgerStore()
        backends = Backends(
            ledger=ledger,
            rate_source=InMemoryRateSource(settings.fx_rate),
            identity_repo=InMemoryIdentityRepository(ledger),
        )

    logger.info("Using %s ledger backend", settings.ledger_backend)
    return backends


def build_orchestrator(settings: Settings, backends: Backends) -> TransferOrchestrator:
    return TransferOrchestrator(
        backends.ledger,
        backends.rate_source,
        identity_repo=backends.identity_repo,
        elicitation_timeout=settings.elicitation_timeout,
    )
