"""Periodic full reconciliation of every record.

The sweep heals records whose triggering event was lost or arrived before
GitHub had propagated the change.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .models import ReconcileAction, ReconcileBatch
from .reconciler import Reconciler, reconcile_isolated
from .router import DEFAULT_MAX_CONCURRENCY
from .store import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = 300


@dataclass
class SweepResult:
    """Summary of one sweep."""

    total: int = 0
    batch: ReconcileBatch = field(default_factory=ReconcileBatch)
    duration_seconds: float = 0.0

    def __str__(self) -> str:
        return (
            f"SweepResult(total={self.total}, "
            f"updated={self.batch.count(ReconcileAction.UPDATED)}, "
            f"retired={self.batch.count(ReconcileAction.RETIRED)}, "
            f"orphaned={self.batch.count(ReconcileAction.ORPHANED)}, "
            f"failed={len(self.batch.failures)}, "
            f"duration={self.duration_seconds:.2f}s)"
        )


class Sweeper:
    """Reconciles all records on a fixed interval."""

    def __init__(
        self,
        store: RecordStore,
        reconciler: Reconciler,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        self.store = store
        self.reconciler = reconciler
        self.interval_seconds = interval_seconds
        self.max_concurrency = max_concurrency

        self.stats: dict[str, Any] = {
            "total_sweeps": 0,
            "failed_sweeps": 0,
            "last_sweep_at": None,
            "last_result": None,
            "last_error": None,
        }

    async def sweep(self) -> SweepResult:
        """Reconcile every stored record once, isolating per-record failures."""
        start = time.monotonic()
        records = await self.store.get_all()
        batch = await reconcile_isolated(self.reconciler, records, self.max_concurrency)
        result = SweepResult(
            total=len(records),
            batch=batch,
            duration_seconds=time.monotonic() - start,
        )
        logger.info(f"Sweep completed: {result}")
        return result

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Sweep immediately, then every ``interval_seconds`` until shutdown."""
        logger.info(f"Starting sweep loop (interval: {self.interval_seconds}s)")

        while not shutdown_event.is_set():
            try:
                result = await self.sweep()
                self.stats["total_sweeps"] += 1
                self.stats["last_sweep_at"] = datetime.now(UTC)
                self.stats["last_result"] = str(result)
            except Exception as e:
                # Store unavailable; try again next cycle
                logger.error(f"Sweep failed: {e}")
                self.stats["total_sweeps"] += 1
                self.stats["failed_sweeps"] += 1
                self.stats["last_error"] = {
                    "message": str(e),
                    "timestamp": datetime.now(UTC),
                }

            try:
                await asyncio.wait_for(
                    shutdown_event.wait(), timeout=self.interval_seconds
                )
                break
            except TimeoutError:
                continue

        logger.info("Sweep loop stopped")
