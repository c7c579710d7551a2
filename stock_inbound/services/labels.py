from __future__ import annotations

from collections.abc import Iterable

from stock_inbound.config.loader import LabelConfig
from stock_inbound.models.box_group import BoxGroup, Label

"""Label emitter: one printable label per committed box.

The QR payload lists the box's identifiers one per line, sorted, so a label regenerated
later from the same identifier set is byte-identical. Printer markup is ZPL sized for a
600x800 dot label by default.
"""

__all__ = [
    "qr_payload",
    "zpl_markup",
    "build_label",
    "build_labels",
]


def _zpl_field(text: str) -> str:
    # ^ and ~ start ZPL commands inside field data
    return text.replace("^", " ").replace("~", " ").strip()


def qr_payload(identifiers: Iterable[str]) -> str:
    """One identifier per line, deduplicated and sorted, so the payload depends only on the set."""
    return "\n".join(sorted(set(identifiers)))


def zpl_markup(device: str, box_no: str, quantity: int, payload: str, settings: LabelConfig | None = None) -> str:
    """ZPL for one box label.

    Args:
        device: device display name printed at the top
        box_no: box code printed under the QR code
        quantity: identifier count printed last
        payload: QR content (see `qr_payload`)
        settings: label size in dots (default LabelConfig())

    Returns:
        `^XA` ... `^XZ` markup, one command per line
    """
    settings = settings or LabelConfig()
    lines = [
        "^XA",
        f"^PW{settings.width_dots}",
        f"^LL{settings.length_dots}",
        "^CI28",
        f"^FO30,30^A0N,45,45^FD{_zpl_field(device)}^FS",
        f"^FO60,110^BQN,2,8^FDLA,{_zpl_field(payload)}^FS",
        f"^FO30,600^A0N,40,40^FDBOX: {_zpl_field(box_no)}^FS",
        f"^FO30,660^A0N,35,35^FDIMEI: {quantity}^FS",
        "^XZ",
    ]
    return "\n".join(lines)


def build_label(group: BoxGroup, settings: LabelConfig | None = None) -> Label:
    """Label for one committed box group.

    Args:
        group: device, box code and identifier set of the box
        settings: label size passed on to `zpl_markup`

    Returns:
        Label; rebuilding it from an equal group gives identical payload and markup
    """
    payload = qr_payload(group.identifiers)
    return Label(
        device=group.device,
        box_no=group.box_no,
        quantity=group.quantity,
        qr_payload=payload,
        printer_markup=zpl_markup(group.device, group.box_no, group.quantity, payload, settings),
    )


def build_labels(groups: Iterable[BoxGroup], settings: LabelConfig | None = None) -> list[Label]:
    return [build_label(g, settings) for g in groups]
