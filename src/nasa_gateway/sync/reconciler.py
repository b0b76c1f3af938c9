"""Set reconciliation between a freshly fetched rover manifest and the stored sols.

The stored side only ever advances: sols above the stored high-water mark are
written, sols at or below it are assumed to be persisted already and are never
re-validated. Stored sols missing from the fresh manifest are deleted.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, Optional, Set

from nasa_gateway.core.errors import PartialReconciliationFailure
from nasa_gateway.core.models import ManifestRecord, ReconcileOutcome, ReconcilePlan
from nasa_gateway.store.sqlite_store import SqliteStore

logger = logging.getLogger(__name__)


def merge_manifest(records: Iterable[ManifestRecord]) -> list[ManifestRecord]:
    """Collapse entries sharing a sol: counts are summed, cameras are unioned.

    Entries reporting zero photos are dropped before merging.
    """
    counts: Dict[int, int] = {}
    categories: Dict[int, Set[str]] = {}
    for record in records:
        if record.item_count <= 0:
            continue
        counts[record.period_key] = counts.get(record.period_key, 0) + record.item_count
        categories.setdefault(record.period_key, set()).update(record.categories)
    return [
        ManifestRecord(period_key=key, item_count=counts[key], categories=frozenset(categories[key]))
        for key in sorted(counts)
    ]


def high_water_mark(stored: Iterable[ManifestRecord]) -> Optional[int]:
    keys = [record.period_key for record in stored]
    return max(keys) if keys else None


def reconcile(
    parent_identity: str,
    fresh_manifest: Iterable[ManifestRecord],
    stored_manifest: Iterable[ManifestRecord],
) -> ReconcilePlan:
    stored = list(stored_manifest)
    merged = merge_manifest(fresh_manifest)
    mark = high_water_mark(stored)

    to_insert_or_update = [record for record in merged if mark is None or record.period_key > mark]

    merged_keys = {record.period_key for record in merged}
    to_delete = sorted({record.period_key for record in stored} - merged_keys)

    logger.debug(
        "reconcile.plan parent=%s merged=%d high_water_mark=%s insert=%d delete=%d",
        parent_identity,
        len(merged),
        mark,
        len(to_insert_or_update),
        len(to_delete),
    )
    return ReconcilePlan(
        parent_identity=parent_identity,
        to_insert_or_update=to_insert_or_update,
        to_delete=to_delete,
        merged=merged,
    )


def apply_plan(store: SqliteStore, plan: ReconcilePlan, now: datetime) -> ReconcileOutcome:
    """Persist a plan one sol at a time. A failing sol is logged and skipped."""
    outcome = ReconcileOutcome(parent_identity=plan.parent_identity)
    rover = plan.parent_identity

    for period_key in plan.to_delete:
        try:
            store.delete_manifest_record(rover, period_key)
            outcome.deleted.append(period_key)
        except Exception as e:
            logger.exception("Failed to delete stored sol. rover=%s sol=%s", rover, period_key)
            outcome.failures.append(PartialReconciliationFailure(rover, period_key, e))

    for record in plan.to_insert_or_update:
        try:
            store.upsert_manifest_record(rover, record, now)
            outcome.stored.append(record.period_key)
        except Exception as e:
            logger.exception("Failed to store sol. rover=%s sol=%s", rover, record.period_key)
            outcome.failures.append(PartialReconciliationFailure(rover, record.period_key, e))

    if outcome.deleted:
        logger.info("[%s] Deleted %d sols without photos", rover, len(outcome.deleted))
    if outcome.stored:
        logger.info("[%s] Stored %d sols with photos", rover, len(outcome.stored))
    return outcome
