from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from typing import Any

from stock_inbound.db.store import InventoryStore
from stock_inbound.models.box_group import BoxGroup, BoxKey, CommitPlan, PlannedItem
from stock_inbound.models.parsed_row import ParsedRow
from stock_inbound.models.rejection import ImportRejected

"""Reconciliation: validated rows -> box groups -> commit plan.

- rows are grouped by (resolved device display name, box code); identifiers are unioned
- before anything is written every identifier is looked up in the store; a single hit
  rejects the whole import (IdentifierConflictError), nothing is committed partially
- remaining groups are split into boxes that already exist for this location and boxes
  that must be created
"""

__all__ = [
    "IdentifierConflictError",
    "UnmappedDeviceError",
    "group_rows",
    "check_conflicts",
    "build_plan",
]

logger = logging.getLogger(__name__)


class IdentifierConflictError(ImportRejected):
    """At least one identifier of the import already exists in the store."""

    reason = "IDENTIFIER_CONFLICT"


class UnmappedDeviceError(ImportRejected):
    """A grouped device display name has no catalog entry (catalog changed mid-import)."""

    reason = "DEVICE_NOT_IN_CATALOG"


def group_rows(rows: Iterable[ParsedRow]) -> list[BoxGroup]:
    """Group validated rows into boxes.

    Args:
        rows: parsed rows; rows without a resolved device are skipped

    Returns:
        one BoxGroup per (device, box code) holding the union of its identifiers,
        sorted by device then box code
    """
    buckets: dict[BoxKey, set[str]] = defaultdict(set)
    for row in rows:
        if row.device_resolved is None:
            continue
        buckets[(row.device_resolved, row.box_no)].add(row.identifier)
    return [
        BoxGroup(device=device, box_no=box_no, identifiers=frozenset(ids))
        for (device, box_no), ids in sorted(buckets.items())
        if ids
    ]


def check_conflicts(store: InventoryStore, groups: Iterable[BoxGroup], preview_limit: int = 50) -> None:
    """Reject the import when any identifier already exists in the store.

    Args:
        store: read access for the identifier lookup
        groups: every group of the import; checked together, all or nothing
        preview_limit: how many conflicting identifiers to carry in the error

    Raises:
        IdentifierConflictError: offending = first `preview_limit` conflicts (sorted)
    """
    identifiers = [identifier for g in groups for identifier in g.identifiers]
    existing = store.find_existing_identifiers(identifiers)
    if not existing:
        return
    conflicts = sorted(existing)
    logger.warning("identifier conflict: %d of %d already in stock", len(conflicts), len(identifiers))
    raise IdentifierConflictError(
        f"{len(conflicts)} IMEI(s) already exist in stock; import blocked, nothing was written",
        offending=conflicts[:preview_limit],
        total_offending=len(conflicts),
    )


def build_plan(
    store: InventoryStore,
    groups: list[BoxGroup],
    location: str,
    device_ids: Mapping[str, Any],
) -> CommitPlan:
    """Partition groups into existing vs new boxes and list the items to insert.

    Parameters
    ----------
    store: read access for the existing-box lookup
    groups: output of `group_rows`, already conflict-checked
    location: location tag of this import
    device_ids: device display name -> catalog device id
    """
    missing = sorted({g.device for g in groups if g.device not in device_ids})
    if missing:
        raise UnmappedDeviceError(f"device(s) missing from catalog: {', '.join(missing)}", offending=missing)

    refs = [(device_ids[g.device], g.box_no) for g in groups]
    found = store.find_boxes(location, refs)

    existing_box_refs: dict[BoxKey, Any] = {}
    new_boxes: list[BoxGroup] = []
    for group in groups:
        box_id = found.get((device_ids[group.device], group.box_no))
        if box_id is None:
            new_boxes.append(group)
        else:
            existing_box_refs[group.key] = box_id

    items = tuple(
        PlannedItem(identifier=identifier, box_key=group.key)
        for group in groups
        for identifier in group.sorted_identifiers()
    )
    plan = CommitPlan(
        location=location,
        groups=tuple(groups),
        new_boxes=tuple(new_boxes),
        existing_box_refs=existing_box_refs,
        items_to_insert=items,
        device_ids={name: device_ids[name] for name in {g.device for g in groups}},
    )
    logger.info(
        "plan boxes_new=%d boxes_existing=%d items=%d",
        len(plan.new_boxes),
        len(plan.existing_box_refs),
        len(plan.items_to_insert),
    )
    return plan
