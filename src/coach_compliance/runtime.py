"""Wire a ``Config`` into a ready-to-use set of compliance services."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import psycopg

from .assignments import PlanAssignments
from .cache import ComplianceCache
from .config import Config
from .history import ComplianceHistory
from .logging import setup_logging
from .mutator import ComplianceMutator
from .postgres import PostgresComplianceStore, PostgresPlanProvider, ensure_schema
from .store import GuardedComplianceStore, GuardedPlanProvider

logger = logging.getLogger(__name__)


@dataclass
class ComplianceServices:
    config: Config
    conn: psycopg.AsyncConnection[Any]
    store: GuardedComplianceStore
    plans: GuardedPlanProvider
    cache: ComplianceCache
    mutator: ComplianceMutator
    history: ComplianceHistory
    assignments: PlanAssignments

    async def close(self) -> None:
        await self.conn.close()

    async def __aenter__(self) -> ComplianceServices:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


async def open_compliance(
    config: Config | None = None,
    *,
    conn: psycopg.AsyncConnection[Any] | None = None,
    create_schema: bool = False,
) -> ComplianceServices:
    """Connect to Postgres and build the guarded store, mutator and read model.

    ``conn`` skips connecting and uses an existing connection, which must be in
    autocommit mode.
    """
    config = config or Config.from_env()
    setup_logging(config.log_format)

    if conn is None:
        if not config.database_url:
            raise RuntimeError("COMPLIANCE_DATABASE_URL must be set")
        conn = (await PostgresComplianceStore.connect(config.database_url)).conn
    if create_schema:
        await ensure_schema(conn)

    store = GuardedComplianceStore(
        PostgresComplianceStore(conn),
        timeout_seconds=config.request_timeout_seconds,
        max_retries=config.max_retries,
    )
    plans = GuardedPlanProvider(
        PostgresPlanProvider(conn),
        timeout_seconds=config.request_timeout_seconds,
        max_retries=config.max_retries,
    )
    cache = ComplianceCache()
    mutator = ComplianceMutator(store, cache=cache, plans=plans)
    history = ComplianceHistory(
        store,
        plans,
        reconciler=mutator.reconciler,
        cache=cache,
        config=config,
    )

    logger.info(
        "Compliance services ready (timeout %.1fs, %d retry, week starts on %d)",
        config.request_timeout_seconds,
        config.max_retries,
        config.week_starts_on,
    )
    return ComplianceServices(
        config=config,
        conn=conn,
        store=store,
        plans=plans,
        cache=cache,
        mutator=mutator,
        history=history,
        assignments=PlanAssignments(mutator),
    )
