from __future__ import annotations

import logging

from stock_inbound.db.store import AuditSummary, InventoryStore
from stock_inbound.models.box_group import BoxKey, CommitPlan
from stock_inbound.models.import_result import CommitReceipt

from .progress import BatchProgress
from .reconciliation import IdentifierConflictError

"""Commit executor: applies a CommitPlan to the store in one transaction.

Order inside the transaction:
1. re-check the plan's identifiers (a concurrent import may have committed them since
   the pre-commit check); any hit rolls back with zero writes
2. create the missing boxes and read their ids back
3. insert the items in bounded batches, each referencing its box id
4. write one audit row for the import

Any failure rolls the whole transaction back and propagates; there is no retry.
"""

__all__ = [
    "execute_plan",
]

logger = logging.getLogger(__name__)


def execute_plan(
    store: InventoryStore,
    plan: CommitPlan,
    *,
    file_name: str,
    actor: str,
    conflict_preview_limit: int = 50,
) -> CommitReceipt:
    """Apply `plan`; returns what was written.

    Raises:
        IdentifierConflictError: identifiers appeared in the store since planning
        StoreError: any store failure (transaction rolled back)
    """
    with store.transaction():
        existing = store.find_existing_identifiers(plan.identifiers)
        if existing:
            conflicts = sorted(existing)
            raise IdentifierConflictError(
                f"{len(conflicts)} IMEI(s) were added to stock by another import; import blocked, nothing was written",
                offending=conflicts[:conflict_preview_limit],
                total_offending=len(conflicts),
            )

        refs = [(plan.device_ids[g.device], g.box_no) for g in plan.new_boxes]
        created = store.create_boxes(plan.location, refs)
        box_ids: dict[BoxKey, object] = {
            g.key: created[(plan.device_ids[g.device], g.box_no)] for g in plan.new_boxes
        }
        logger.debug("created %d box(es)", len(box_ids))

        rows = [
            (identifier, box_id, plan.device_ids[item.box_key[0]])
            for (identifier, box_id), item in zip(plan.items_with_box_ids(box_ids), plan.items_to_insert, strict=True)
        ]
        with BatchProgress(len(rows)) as progress:
            inserted = store.insert_items(rows, on_batch=progress.advance)

        import_id = store.record_audit(
            AuditSummary(
                file_name=file_name,
                location=plan.location,
                actor=actor,
                devices=tuple(sorted({g.device for g in plan.groups})),
                boxes_count=len(plan.groups),
                items_count=inserted,
            )
        )

    receipt = CommitReceipt(
        import_id=import_id,
        boxes_created=len(plan.new_boxes),
        boxes_reused=len(plan.existing_box_refs),
        items_inserted=inserted,
    )
    logger.info(
        "committed import_id=%s boxes_created=%d boxes_reused=%d items=%d",
        receipt.import_id,
        receipt.boxes_created,
        receipt.boxes_reused,
        receipt.items_inserted,
    )
    return receipt
