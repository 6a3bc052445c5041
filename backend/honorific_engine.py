"""Korean honorific templates for memorial tablets.

Templates are looked up by (relation kind, joint position) instead of being
assembled through branching, so every relation/column combination can be
enumerated and tested. All functions here are pure; slot transitions return
new `TabletSlot` instances.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from backend.relations import (
    GENERATION_PREFIX,
    RELATION_CATALOG,
    GenderClass,
    JointPosition,
    RelationKind,
    gender_of,
    is_child,
    is_couple,
)
from backend.tablet_state import TabletSlot

PREFIX = "현"
SUFFIX = "신위"
MALE_TITLE = "학생"
MALE_HONORIFIC = "부군"
FEMALE_TITLE = "유인"
FEMALE_NAME_SUFFIX = "씨"

CLAN_PLACEHOLDER = "OO"
FAMILY_PLACEHOLDER = "O"
PERSONAL_NAME_PLACEHOLDER = "OO"

_PAREN_NOTE = re.compile(r"\([^)]*\)")


def strip_parens(text: str) -> str:
    """Drop parenthesised author notes: "김해(본관 설명)" -> "김해"."""
    return _PAREN_NOTE.sub("", text or "").strip()


class TemplateFill(str, Enum):
    NONE = "none"
    CLAN_FAMILY = "clan_family"
    PERSONAL_NAME = "personal_name"


@dataclass(frozen=True)
class HonorificTemplate:
    head: str
    fill: TemplateFill = TemplateFill.NONE
    tail: str = SUFFIX

    def render(self, clan: str = "", family_name: str = "", personal_name: str = "") -> str:
        if self.fill is TemplateFill.CLAN_FAMILY:
            clan_part = strip_parens(clan) or CLAN_PLACEHOLDER
            family_part = strip_parens(family_name) or FAMILY_PLACEHOLDER
            return f"{self.head}{clan_part}{family_part}{FEMALE_NAME_SUFFIX}{self.tail}"
        if self.fill is TemplateFill.PERSONAL_NAME:
            name_part = strip_parens(personal_name) or PERSONAL_NAME_PLACEHOLDER
            return f"{self.head}{name_part}{self.tail}"
        return f"{self.head}{self.tail}"


def _ancestor_male(generation: int) -> HonorificTemplate:
    return HonorificTemplate(f"{PREFIX}{GENERATION_PREFIX[generation]}고{MALE_TITLE}{MALE_HONORIFIC}")


def _ancestor_female(generation: int) -> HonorificTemplate:
    return HonorificTemplate(f"{PREFIX}{GENERATION_PREFIX[generation]}비{FEMALE_TITLE}", TemplateFill.CLAN_FAMILY)


# Used when a woman's detail fields are bound on a relation without its own template.
FALLBACK_FEMALE_TEMPLATE = HonorificTemplate(f"{PREFIX}O{FEMALE_TITLE}", TemplateFill.CLAN_FAMILY)

_SPECIAL_TEMPLATES: dict[RelationKind, HonorificTemplate] = {
    RelationKind.HUSBAND: HonorificTemplate(f"{PREFIX}벽{MALE_TITLE}{MALE_HONORIFIC}"),
    RelationKind.WIFE: HonorificTemplate(f"망실{FEMALE_TITLE}", TemplateFill.CLAN_FAMILY),
    RelationKind.SON: HonorificTemplate("망자수재", TemplateFill.PERSONAL_NAME),
    RelationKind.DAUGHTER: HonorificTemplate("망녀수재", TemplateFill.PERSONAL_NAME),
}


def _build_template_table() -> dict[tuple[RelationKind, JointPosition], HonorificTemplate]:
    table: dict[tuple[RelationKind, JointPosition], HonorificTemplate] = {}
    for kind, info in RELATION_CATALOG.items():
        if kind in _SPECIAL_TEMPLATES:
            table[(kind, JointPosition.PRIMARY)] = _SPECIAL_TEMPLATES[kind]
        elif info.generation is None:
            continue
        elif info.gender is GenderClass.COUPLE:
            # A second wife shares the first wife's honorific form.
            table[(kind, JointPosition.PRIMARY)] = _ancestor_male(info.generation)
            table[(kind, JointPosition.SECONDARY)] = _ancestor_female(info.generation)
            table[(kind, JointPosition.TERTIARY)] = _ancestor_female(info.generation)
        elif info.gender is GenderClass.MALE:
            table[(kind, JointPosition.PRIMARY)] = _ancestor_male(info.generation)
        else:
            table[(kind, JointPosition.PRIMARY)] = _ancestor_female(info.generation)
    return table


TEMPLATE_TABLE = _build_template_table()


def template_for(kind: RelationKind, position: JointPosition = JointPosition.PRIMARY) -> HonorificTemplate | None:
    return TEMPLATE_TABLE.get((RelationKind(kind), JointPosition(position)))


def generate_korean_text(kind: RelationKind, is_secondary_wife: bool = False) -> str:
    """Placeholder honorific for a relation.

    With `is_secondary_wife` the wife column of a joint tablet is produced;
    relations without such a column (and the custom kind) yield "".
    """
    position = JointPosition.SECONDARY if is_secondary_wife else JointPosition.PRIMARY
    template = template_for(kind, position)
    return template.render() if template else ""


def _wife_template(kind: RelationKind, position: JointPosition) -> HonorificTemplate:
    template = template_for(kind, position)
    if template is None or template.fill is not TemplateFill.CLAN_FAMILY:
        return FALLBACK_FEMALE_TEMPLATE
    return template


class DetailField(str, Enum):
    CLAN = "clan"
    FAMILY_NAME = "family_name"
    CLAN_TERTIARY = "clan_tertiary"
    FAMILY_NAME_TERTIARY = "family_name_tertiary"


_TERTIARY_FIELDS = {DetailField.CLAN_TERTIARY, DetailField.FAMILY_NAME_TERTIARY}


def select_relation(slot: TabletSlot, kind: RelationKind) -> TabletSlot:
    """Switch relation: detail fields reset, Primary/Secondary regenerate, Tertiary clears."""
    kind = RelationKind(kind)
    return slot.evolve(
        relation=kind,
        clan="",
        family_name="",
        clan_tertiary="",
        family_name_tertiary="",
        korean_primary=generate_korean_text(kind),
        korean_secondary=generate_korean_text(kind, is_secondary_wife=True) if is_couple(kind) else "",
        korean_tertiary="",
        hanja_primary="",
        hanja_secondary="",
        hanja_tertiary="",
    )


def update_detail(slot: TabletSlot, field: DetailField, value: str) -> TabletSlot:
    """Store a detail field and re-derive the honorific it feeds."""
    field = DetailField(field)
    changes: dict[str, str] = {field.value: value}
    merged = slot.model_dump()
    merged.update(changes)
    kind = slot.relation

    if field in _TERTIARY_FIELDS:
        if slot.has_tertiary:
            changes["korean_tertiary"] = _wife_template(kind, JointPosition.TERTIARY).render(
                merged["clan_tertiary"], merged["family_name_tertiary"]
            )
    elif is_child(kind):
        if field is DetailField.FAMILY_NAME:
            changes["korean_primary"] = template_for(kind).render(personal_name=value)
    elif is_couple(kind):
        changes["korean_secondary"] = _wife_template(kind, JointPosition.SECONDARY).render(
            merged["clan"], merged["family_name"]
        )
    elif gender_of(kind) is GenderClass.FEMALE:
        changes["korean_primary"] = _wife_template(kind, JointPosition.PRIMARY).render(
            merged["clan"], merged["family_name"]
        )

    return slot.evolve(**changes)


def toggle_tertiary(slot: TabletSlot) -> TabletSlot:
    if slot.has_tertiary:
        return slot.evolve(
            korean_tertiary="",
            hanja_tertiary="",
            clan_tertiary="",
            family_name_tertiary="",
        )
    if not is_couple(slot.relation):
        raise ValueError("a second wife can only be added to a joint-enshrinement tablet")
    return slot.evolve(korean_tertiary=template_for(slot.relation, JointPosition.TERTIARY).render())


def edit_korean(slot: TabletSlot, position: JointPosition, text: str) -> TabletSlot:
    return slot.evolve(**{f"korean_{JointPosition(position).value}": text})


def edit_hanja(slot: TabletSlot, position: JointPosition, text: str) -> TabletSlot:
    return slot.evolve(**{f"hanja_{JointPosition(position).value}": text})


def extract_hints(slot: TabletSlot) -> list[str]:
    """Disambiguation notes passed to the Hanja converter, never into the honorific."""
    hints: list[str] = []
    if is_child(slot.relation):
        if slot.clan.strip():
            hints.append(f"이름 한자 뜻/음: {slot.clan.strip()}")
        if "(" in slot.family_name:
            hints.append(f"이름: {slot.family_name.strip()}")
        return hints

    labelled = [
        ("본관", slot.clan),
        ("성씨", slot.family_name),
        ("재취비 본관", slot.clan_tertiary),
        ("재취비 성씨", slot.family_name_tertiary),
    ]
    for label, value in labelled:
        if "(" in value:
            hints.append(f"{label}: {value.strip()}")
    return hints
