from __future__ import annotations

import unittest

from pydantic import ValidationError

from backend.honorific_engine import select_relation, toggle_tertiary
from backend.relations import JointPosition, RelationKind
from backend.tablet_state import (
    DEFAULT_HANJA_TEXT,
    DEFAULT_KOREAN_TEXT,
    SheetState,
    SlotNotEditableError,
    TabletSlot,
    effective_slots,
    replace_slot,
    set_outlines,
    toggle_custom,
)


class TestTabletSlot(unittest.TestCase):
    def test_default_slot_is_father(self) -> None:
        slot = TabletSlot()
        self.assertIs(slot.relation, RelationKind.FATHER)
        self.assertEqual(slot.korean_primary, DEFAULT_KOREAN_TEXT)
        self.assertEqual(slot.hanja_primary, DEFAULT_HANJA_TEXT)
        self.assertEqual(slot.occupant_count, 1)

    def test_secondary_requires_couple(self) -> None:
        with self.assertRaises(ValidationError):
            TabletSlot(relation=RelationKind.MOTHER, korean_secondary="현비유인OOO씨신위")

    def test_tertiary_requires_secondary(self) -> None:
        with self.assertRaises(ValidationError):
            TabletSlot(relation=RelationKind.COUPLE_PARENTS, korean_tertiary="현비유인OOO씨신위")

    def test_occupant_count_follows_tertiary(self) -> None:
        couple = select_relation(TabletSlot(), RelationKind.COUPLE_PARENTS)
        self.assertEqual(couple.occupant_count, 2)
        self.assertEqual(toggle_tertiary(couple).occupant_count, 3)

    def test_text_accessors(self) -> None:
        slot = TabletSlot(relation=RelationKind.COUPLE_PARENTS, korean_secondary="a", hanja_secondary="b")
        self.assertEqual(slot.korean_text(JointPosition.SECONDARY), "a")
        self.assertEqual(slot.hanja_text("secondary"), "b")

    def test_slots_are_immutable(self) -> None:
        slot = TabletSlot()
        with self.assertRaises(ValidationError):
            slot.clan = "김해"


class TestSheetState(unittest.TestCase):
    def test_slot_zero_is_always_custom(self) -> None:
        with self.assertRaises(ValidationError):
            SheetState(is_custom=(False, False, False))
        with self.assertRaises(SlotNotEditableError):
            toggle_custom(SheetState(), 0)

    def test_mirrored_slots_follow_slot_zero(self) -> None:
        state = SheetState()
        mother = select_relation(TabletSlot(), RelationKind.MOTHER)
        state = replace_slot(state, 0, mother)
        slots = effective_slots(state)
        self.assertEqual(slots[1], mother)
        self.assertEqual(slots[2], mother)

    def test_custom_toggle_seeds_from_slot_zero(self) -> None:
        grandfather = select_relation(TabletSlot(), RelationKind.GRANDFATHER)
        state = replace_slot(SheetState(), 0, grandfather)
        state = toggle_custom(state, 1)
        self.assertTrue(state.is_custom[1])
        self.assertEqual(state.slots[1], grandfather)

        state = replace_slot(state, 1, select_relation(TabletSlot(), RelationKind.HUSBAND))
        state = replace_slot(state, 0, select_relation(TabletSlot(), RelationKind.WIFE))
        self.assertIs(effective_slots(state)[1].relation, RelationKind.HUSBAND)

    def test_toggle_off_restores_mirror(self) -> None:
        state = toggle_custom(SheetState(), 2)
        state = replace_slot(state, 2, select_relation(TabletSlot(), RelationKind.SON))
        state = toggle_custom(state, 2)
        self.assertFalse(state.is_custom[2])
        self.assertEqual(effective_slots(state)[2], state.slots[0])

        # Further edits to slot 0 keep propagating.
        state = replace_slot(state, 0, select_relation(TabletSlot(), RelationKind.DAUGHTER))
        self.assertIs(effective_slots(state)[2].relation, RelationKind.DAUGHTER)

    def test_mirrored_slot_rejects_edits(self) -> None:
        with self.assertRaises(SlotNotEditableError):
            replace_slot(SheetState(), 1, TabletSlot())

    def test_index_bounds(self) -> None:
        with self.assertRaises(IndexError):
            toggle_custom(SheetState(), 3)

    def test_set_outlines_keeps_slots(self) -> None:
        state = toggle_custom(SheetState(), 1)
        toggled = set_outlines(state, True)
        self.assertTrue(toggled.show_outlines)
        self.assertEqual(toggled.is_custom, state.is_custom)


if __name__ == "__main__":
    unittest.main()
