from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Box group, commit plan and label models.

BoxGroup is the unit of commit: every identifier in a group is distinct and has passed
validation. CommitPlan is built once from the groups and applied once by the commit
executor. Label is derived from a BoxGroup and never persisted.
"""

__all__ = [
    "BoxKey",
    "BoxGroup",
    "PlannedItem",
    "CommitPlan",
    "Label",
]

BoxKey = tuple[str, str]  # (device display name, box code)


@dataclass(frozen=True)
class BoxGroup:
    device: str
    box_no: str
    identifiers: frozenset[str]

    @property
    def key(self) -> BoxKey:
        return (self.device, self.box_no)

    @property
    def quantity(self) -> int:
        return len(self.identifiers)

    def sorted_identifiers(self) -> list[str]:
        return sorted(self.identifiers)


@dataclass(frozen=True)
class PlannedItem:
    """Identifier row to insert; box_key is resolved to a box id at commit time."""
    identifier: str
    box_key: BoxKey


@dataclass(frozen=True)
class CommitPlan:
    """Fully validated, conflict-free set of write operations for one import.

    Attributes:
        location: location tag every box of this import belongs to
        groups: all box groups, sorted by (device, box code)
        new_boxes: groups whose box does not exist yet in the store
        existing_box_refs: (device, box code) -> existing box id
        items_to_insert: one entry per identifier, referencing its box key
        device_ids: device display name -> catalog device id
    """
    location: str
    groups: tuple[BoxGroup, ...]
    new_boxes: tuple[BoxGroup, ...]
    existing_box_refs: dict[BoxKey, Any]
    items_to_insert: tuple[PlannedItem, ...]
    device_ids: dict[str, Any] = field(default_factory=dict)

    @property
    def identifiers(self) -> list[str]:
        return [item.identifier for item in self.items_to_insert]

    @property
    def device_count(self) -> int:
        return len({g.device for g in self.groups})

    def items_with_box_ids(self, box_ids: dict[BoxKey, Any]) -> list[tuple[str, Any]]:
        """Attach box ids (existing + newly created) to every planned item.

        Raises:
            KeyError: a planned item references a box that has no id
        """
        resolved: list[tuple[str, Any]] = []
        for item in self.items_to_insert:
            if item.box_key in self.existing_box_refs:
                resolved.append((item.identifier, self.existing_box_refs[item.box_key]))
            else:
                resolved.append((item.identifier, box_ids[item.box_key]))
        return resolved


@dataclass(frozen=True)
class Label:
    device: str
    box_no: str
    quantity: int
    qr_payload: str
    printer_markup: str

    def to_dict(self) -> dict[str, object]:
        return {
            "device": self.device,
            "box_no": self.box_no,
            "quantity": self.quantity,
            "qr_payload": self.qr_payload,
            "printer_markup": self.printer_markup,
        }
