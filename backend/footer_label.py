"""Footer captions printed under each tablet, plus preview placeholders."""

from __future__ import annotations

from backend.honorific_engine import FEMALE_NAME_SUFFIX, strip_parens
from backend.relations import GenderClass, base_label, gender_of, is_child, is_custom
from backend.tablet_state import TabletSlot

CUSTOM_FOOTER = "직접 입력"
JOINT_MARKER = "(합설)"
TRIPLE_JOINT_MARKER = "(삼위 합설)"

COLUMN_PLACEHOLDERS = {
    1: ("내용 없음",),
    2: ("남", "여"),
    3: ("남", "본비", "재취비"),
}


def _person_clause(clan: str, family_name: str) -> str:
    clan = strip_parens(clan)
    family_name = strip_parens(family_name)
    if not (clan or family_name):
        return ""
    return f"{clan} {family_name}{FEMALE_NAME_SUFFIX}".strip()


def footer_label(slot: TabletSlot) -> str:
    if is_custom(slot.relation):
        return CUSTOM_FOOTER

    label = base_label(slot.relation)
    gender = gender_of(slot.relation)
    couple = gender is GenderClass.COUPLE
    if not couple and (gender is not GenderClass.FEMALE or is_child(slot.relation)):
        return label

    clauses = [_person_clause(slot.clan, slot.family_name)]
    if slot.has_tertiary:
        clauses.append(_person_clause(slot.clan_tertiary, slot.family_name_tertiary))
    details = ", ".join(clause for clause in clauses if clause)

    marker = ""
    if couple:
        marker = TRIPLE_JOINT_MARKER if slot.has_tertiary else JOINT_MARKER

    if details:
        return f"{label} ({details}){marker}"
    if marker:
        return f"{label} {marker}"
    return label


def column_placeholders(occupant_count: int) -> tuple[str, ...]:
    return COLUMN_PLACEHOLDERS[occupant_count]
