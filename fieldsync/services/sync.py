"""Normalize-and-dedup pipeline shared by pull sync, webhooks and manual refreshes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Set

from fieldsync.clients.vendor import Page
from fieldsync.core.errors import NormalizationError
from fieldsync.core.ports import NormalizedRecord, RecordRepository
from fieldsync.schemas.records import ResourceKind
from fieldsync.services.normalizer import ResourceNormalizer

logger = logging.getLogger(__name__)

PageFetcher = Callable[[Optional[str]], Awaitable[Page]]


class SyncTrigger(str, Enum):
    SCHEDULED = "scheduled"
    WEBHOOK = "webhook"
    MANUAL = "manual"


@dataclass(slots=True)
class SyncReport:
    """What one sync run fetched, stored and skipped.

    ``records`` holds only the net-new records that were persisted; ``observed``
    holds every distinct record the run normalized, new or not.
    """

    trigger: SyncTrigger
    kind: ResourceKind
    fetched: int = 0
    records: List[NormalizedRecord] = field(default_factory=list)
    observed: List[NormalizedRecord] = field(default_factory=list)
    duplicates: int = 0
    failed: int = 0
    cancelled: bool = False


def _is_cancelled(event: Optional[asyncio.Event]) -> bool:
    return event is not None and event.is_set()


class SyncPipeline:
    """Normalize vendor payloads, drop already-seen records and persist the rest."""

    def __init__(self, normalizer: ResourceNormalizer, repository: RecordRepository) -> None:
        self._normalizer = normalizer
        self._repo = repository

    async def run(
        self,
        tenant_id: str,
        kind: ResourceKind,
        fetch_page: PageFetcher,
        *,
        trigger: SyncTrigger,
        max_pages: int = 1,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SyncReport:
        """Page through ``fetch_page`` until the cursor runs out, ``max_pages`` or cancellation."""
        report = SyncReport(trigger=trigger, kind=kind)
        seen: Set[str] = set()
        cursor: Optional[str] = None

        for _ in range(max_pages):
            if _is_cancelled(cancel_event):
                break
            items, cursor = await fetch_page(cursor)
            # A page that was in flight when the sync was cancelled is dropped.
            if _is_cancelled(cancel_event):
                break
            self._ingest_into(report, tenant_id, items, seen)
            if not cursor:
                break

        if _is_cancelled(cancel_event):
            report.cancelled = True
            logger.info("Cancelled %s %s sync for tenant %s.", kind.value, trigger.value, tenant_id)
        self._log_report(tenant_id, report)
        return report

    def ingest(
        self,
        tenant_id: str,
        kind: ResourceKind,
        payloads: Iterable[Mapping[str, Any]],
        *,
        trigger: SyncTrigger,
    ) -> SyncReport:
        """Run already-delivered payloads (e.g. from a webhook) through the pipeline."""
        report = SyncReport(trigger=trigger, kind=kind)
        self._ingest_into(report, tenant_id, payloads, set())
        self._log_report(tenant_id, report)
        return report

    def _ingest_into(
        self,
        report: SyncReport,
        tenant_id: str,
        payloads: Iterable[Mapping[str, Any]],
        seen: Set[str],
    ) -> None:
        for payload in payloads:
            report.fetched += 1
            try:
                record = self._normalizer.normalize(report.kind, payload)
            except NormalizationError as exc:
                report.failed += 1
                logger.warning("Skipping %s record for tenant %s: %s", report.kind.value, tenant_id, exc)
                continue

            key = record.dedup_key
            if key in seen:
                report.duplicates += 1
                continue
            seen.add(key)
            report.observed.append(record)
            if self._repo.exists_by_vendor_id(tenant_id, key):
                report.duplicates += 1
                continue
            self._repo.append_normalized_record(tenant_id, record)
            report.records.append(record)

    @staticmethod
    def _log_report(tenant_id: str, report: SyncReport) -> None:
        logger.info(
            "%s %s sync for tenant %s: fetched=%d new=%d duplicates=%d failed=%d",
            report.trigger.value,
            report.kind.value,
            tenant_id,
            report.fetched,
            len(report.records),
            report.duplicates,
            report.failed,
        )


__all__ = ["PageFetcher", "SyncPipeline", "SyncReport", "SyncTrigger"]
