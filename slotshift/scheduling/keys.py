"""Composite drag-and-drop keys used by the schedule board UI.

Single-practitioner boards encode slots as ``scheduleId:slotId``; the
multi-practitioner comparison board prefixes the practitioner id
(``doctorId:scheduleId:slotId``). The core only works with ``SlotRef``.
"""

from typing import Optional

from slotshift.scheduling.errors import InvalidDragKeyError
from slotshift.scheduling.models import SlotRef

_SEPARATOR = ":"


def encode_drag_key(ref: SlotRef, multi_practitioner: bool = False) -> str:
    if multi_practitioner:
        if not ref.practitioner_id:
            raise InvalidDragKeyError("Multi-practitioner keys need a practitioner id")
        parts = [ref.practitioner_id, ref.schedule_id, ref.slot_id]
    else:
        parts = [ref.schedule_id, ref.slot_id]
    if any(_SEPARATOR in p for p in parts):
        raise InvalidDragKeyError(f"Identifier contains {_SEPARATOR!r}: {parts}")
    return _SEPARATOR.join(parts)


def decode_drag_key(key: str, practitioner_id: Optional[str] = None) -> SlotRef:
    """Parse a drag key into a ``SlotRef``.

    *practitioner_id* fills in the practitioner for two-part keys, where the
    board shows a single practitioner.
    """
    parts = key.split(_SEPARATOR)
    if any(not p for p in parts):
        raise InvalidDragKeyError(f"Malformed drag key: {key!r}")
    if len(parts) == 3:
        return SlotRef(practitioner_id=parts[0], schedule_id=parts[1], slot_id=parts[2])
    if len(parts) == 2:
        return SlotRef(practitioner_id=practitioner_id, schedule_id=parts[0], slot_id=parts[1])
    raise InvalidDragKeyError(f"Malformed drag key: {key!r}")
