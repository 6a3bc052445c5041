"""Relationship taxonomy for memorial tablets.

Every relation kind maps to exactly one gender class, a display label and,
for ancestor generations, the generation number used to build the honorific
prefix (1 = parents, 2 = grandparents, ...).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class GenderClass(str, Enum):
    MALE = "M"
    FEMALE = "F"
    COUPLE = "COUPLE"


class JointPosition(str, Enum):
    """Column role on one tablet: husband/single, first wife, second wife."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    TERTIARY = "tertiary"


class RelationKind(str, Enum):
    FATHER = "FATHER"
    MOTHER = "MOTHER"
    GRANDFATHER = "GRANDFATHER"
    GRANDMOTHER = "GRANDMOTHER"
    GREAT_GRANDFATHER = "GREAT_GRANDFATHER"
    GREAT_GRANDMOTHER = "GREAT_GRANDMOTHER"
    GREAT_GREAT_GRANDFATHER = "GREAT_GREAT_GRANDFATHER"
    GREAT_GREAT_GRANDMOTHER = "GREAT_GREAT_GRANDMOTHER"
    HUSBAND = "HUSBAND"
    WIFE = "WIFE"
    SON = "SON"
    DAUGHTER = "DAUGHTER"

    # Joint enshrinement (hapseol)
    COUPLE_PARENTS = "COUPLE_PARENTS"
    COUPLE_GRANDPARENTS = "COUPLE_GRANDPARENTS"
    COUPLE_GREAT_GRANDPARENTS = "COUPLE_GREAT_GRANDPARENTS"
    COUPLE_GREAT_GREAT_GRANDPARENTS = "COUPLE_GREAT_GREAT_GRANDPARENTS"

    CUSTOM = "CUSTOM"


@dataclass(frozen=True)
class RelationInfo:
    label: str
    gender: GenderClass
    hanja_marker: str
    generation: Optional[int] = None


# Honorific prefix inserted between "현" and "고"/"비" per ancestor generation.
GENERATION_PREFIX = {
    1: "",
    2: "조",
    3: "증조",
    4: "고조",
}

RELATION_CATALOG: dict[RelationKind, RelationInfo] = {
    RelationKind.FATHER: RelationInfo("아버지 (부)", GenderClass.MALE, "고", 1),
    RelationKind.MOTHER: RelationInfo("어머니 (모)", GenderClass.FEMALE, "비", 1),
    RelationKind.GRANDFATHER: RelationInfo("할아버지 (조부)", GenderClass.MALE, "조고", 2),
    RelationKind.GRANDMOTHER: RelationInfo("할머니 (조모)", GenderClass.FEMALE, "조비", 2),
    RelationKind.GREAT_GRANDFATHER: RelationInfo("증조할아버지 (증조부)", GenderClass.MALE, "증조고", 3),
    RelationKind.GREAT_GRANDMOTHER: RelationInfo("증조할머니 (증조모)", GenderClass.FEMALE, "증조비", 3),
    RelationKind.GREAT_GREAT_GRANDFATHER: RelationInfo("고조할아버지 (고조부)", GenderClass.MALE, "고조고", 4),
    RelationKind.GREAT_GREAT_GRANDMOTHER: RelationInfo("고조할머니 (고조모)", GenderClass.FEMALE, "고조비", 4),
    RelationKind.COUPLE_PARENTS: RelationInfo("부모님 (부부 합설)", GenderClass.COUPLE, "고/비", 1),
    RelationKind.COUPLE_GRANDPARENTS: RelationInfo("조부모님 (부부 합설)", GenderClass.COUPLE, "조고/조비", 2),
    RelationKind.COUPLE_GREAT_GRANDPARENTS: RelationInfo(
        "증조부모님 (부부 합설)", GenderClass.COUPLE, "증조고/증조비", 3
    ),
    RelationKind.COUPLE_GREAT_GREAT_GRANDPARENTS: RelationInfo(
        "고조부모님 (부부 합설)", GenderClass.COUPLE, "고조고/고조비", 4
    ),
    RelationKind.HUSBAND: RelationInfo("남편 (부)", GenderClass.MALE, "벽"),
    RelationKind.WIFE: RelationInfo("아내 (처)", GenderClass.FEMALE, ""),
    RelationKind.SON: RelationInfo("아들 (자)", GenderClass.MALE, ""),
    RelationKind.DAUGHTER: RelationInfo("딸 (녀)", GenderClass.FEMALE, ""),
    # Custom text is laid out like a single male column; it is never templated.
    RelationKind.CUSTOM: RelationInfo("직접 입력", GenderClass.MALE, ""),
}

CHILD_KINDS = frozenset({RelationKind.SON, RelationKind.DAUGHTER})
SPOUSE_KINDS = frozenset({RelationKind.HUSBAND, RelationKind.WIFE})

# Quick-pick presets for clan seat (본관) and surname.
COMMON_CLANS = [
    {"kor": "김해", "hanja": "金海"},
    {"kor": "밀양", "hanja": "密陽"},
    {"kor": "전주", "hanja": "全州"},
    {"kor": "경주", "hanja": "慶州"},
    {"kor": "파평", "hanja": "坡平"},
    {"kor": "안동", "hanja": "安東"},
]

COMMON_NAMES = [
    {"kor": "김", "hanja": "金"},
    {"kor": "이", "hanja": "李"},
    {"kor": "박", "hanja": "朴"},
    {"kor": "최", "hanja": "崔"},
    {"kor": "정", "hanja": "鄭"},
]


def relation_info(kind: RelationKind) -> RelationInfo:
    return RELATION_CATALOG[RelationKind(kind)]


def gender_of(kind: RelationKind) -> GenderClass:
    return relation_info(kind).gender


def is_couple(kind: RelationKind) -> bool:
    return gender_of(kind) is GenderClass.COUPLE


def is_child(kind: RelationKind) -> bool:
    return RelationKind(kind) in CHILD_KINDS


def is_custom(kind: RelationKind) -> bool:
    return RelationKind(kind) is RelationKind.CUSTOM


def base_label(kind: RelationKind) -> str:
    """Display label without its parenthetical suffix ("아버지 (부)" -> "아버지")."""
    return relation_info(kind).label.split("(")[0].strip()


def catalog_payload() -> list[dict[str, object]]:
    return [
        {
            "kind": kind.value,
            "label": info.label,
            "gender": info.gender.value,
            "hanja_marker": info.hanja_marker,
            "generation": info.generation,
        }
        for kind, info in RELATION_CATALOG.items()
    ]
