"""Tablet slot and sheet state models.

A sheet always holds three slots. Slot 0 is authored directly; slots 1 and 2
either mirror slot 0 or, once flagged custom, carry their own content.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

from backend.relations import JointPosition, RelationKind, is_couple

SLOT_COUNT = 3

DEFAULT_KOREAN_TEXT = "현고학생부군신위"
DEFAULT_HANJA_TEXT = "顯考學生府君神位"


class SlotNotEditableError(ValueError):
    """Raised when a mirrored slot is edited directly."""


class TabletSlot(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    relation: RelationKind = RelationKind.FATHER
    # Adults: clan seat / surname of the (first) wife or single woman.
    # Children: `family_name` holds the personal name, `clan` the meaning/sound hint.
    clan: str = ""
    family_name: str = ""
    clan_tertiary: str = ""
    family_name_tertiary: str = ""

    korean_primary: str = DEFAULT_KOREAN_TEXT
    korean_secondary: str = ""
    korean_tertiary: str = ""

    hanja_primary: str = DEFAULT_HANJA_TEXT
    hanja_secondary: str = ""
    hanja_tertiary: str = ""

    @model_validator(mode="after")
    def _check_joint_columns(self) -> "TabletSlot":
        couple = is_couple(self.relation)
        if not couple and (self.korean_secondary or self.hanja_secondary):
            raise ValueError("secondary text requires a joint-enshrinement relation")
        if self.has_tertiary:
            if not couple:
                raise ValueError("second-wife text requires a joint-enshrinement relation")
            if not (self.korean_secondary or self.hanja_secondary):
                raise ValueError("second-wife text requires first-wife text")
        return self

    @property
    def has_tertiary(self) -> bool:
        return bool(self.korean_tertiary or self.hanja_tertiary)

    @property
    def occupant_count(self) -> int:
        if not is_couple(self.relation):
            return 1
        return 3 if self.has_tertiary else 2

    def korean_text(self, position: JointPosition) -> str:
        return getattr(self, f"korean_{JointPosition(position).value}")

    def hanja_text(self, position: JointPosition) -> str:
        return getattr(self, f"hanja_{JointPosition(position).value}")

    def evolve(self, **changes: Any) -> "TabletSlot":
        """Return a validated copy with `changes` applied."""
        return type(self).model_validate({**self.model_dump(), **changes})


def _default_slots() -> tuple[TabletSlot, TabletSlot, TabletSlot]:
    return (TabletSlot(), TabletSlot(), TabletSlot())


class SheetState(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    slots: tuple[TabletSlot, TabletSlot, TabletSlot] = _default_slots()
    is_custom: tuple[bool, bool, bool] = (True, False, False)
    show_outlines: bool = False

    @model_validator(mode="after")
    def _slot_zero_is_authored(self) -> "SheetState":
        if not self.is_custom[0]:
            raise ValueError("slot 0 is always authored directly")
        return self


def _check_index(index: int) -> int:
    if not 0 <= int(index) < SLOT_COUNT:
        raise IndexError(f"slot index must be in [0, {SLOT_COUNT - 1}], got {index}")
    return int(index)


def effective_slots(state: SheetState) -> list[TabletSlot]:
    base = state.slots[0]
    return [
        slot if index == 0 or state.is_custom[index] else base
        for index, slot in enumerate(state.slots)
    ]


def toggle_custom(state: SheetState, index: int) -> SheetState:
    """Flip the custom flag of slot 1 or 2.

    Turning the flag on seeds the slot from slot 0's current content.
    """
    index = _check_index(index)
    if index == 0:
        raise SlotNotEditableError("slot 0 custom flag cannot be toggled")

    flags = list(state.is_custom)
    flags[index] = not flags[index]
    slots = list(state.slots)
    if flags[index]:
        slots[index] = state.slots[0]
    return SheetState(slots=tuple(slots), is_custom=tuple(flags), show_outlines=state.show_outlines)


def replace_slot(state: SheetState, index: int, slot: TabletSlot) -> SheetState:
    index = _check_index(index)
    if not state.is_custom[index]:
        raise SlotNotEditableError(f"slot {index} mirrors slot 0; enable custom content first")
    slots = list(state.slots)
    slots[index] = slot
    return SheetState(slots=tuple(slots), is_custom=state.is_custom, show_outlines=state.show_outlines)


def set_outlines(state: SheetState, show: bool) -> SheetState:
    return SheetState(slots=state.slots, is_custom=state.is_custom, show_outlines=bool(show))
