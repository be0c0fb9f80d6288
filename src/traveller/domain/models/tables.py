"""Lookup helpers for the JSON-shaped career and species tables.

Table documents come from external data and are loosely typed: roll keys may
be strings or integers and most sections are optional. Everything here is
tolerant of missing keys and returns ``None`` instead of raising.
"""
from __future__ import annotations

from typing import Any, Mapping

from traveller.domain.models.stats import normalize_attribute_name


CORE_SKILL_TABLE_KEYS = frozenset(
    {
        "personal_development",
        "service_skills",
        "advanced_education",
        "advanced_education_requirements",
        "officer",
    }
)


def table_entry(table: Mapping[Any, Any] | None, roll: int) -> Any:
    if not isinstance(table, Mapping):
        return None
    for key in (str(roll), roll):
        if key in table:
            return table[key]
    return None


def first_requirement(requirement: Mapping[str, Any] | None) -> tuple[str, int] | None:
    if not isinstance(requirement, Mapping) or not requirement:
        return None
    raw_attr, raw_target = next(iter(requirement.items()))
    attribute = normalize_attribute_name(raw_attr)
    if attribute is None:
        return None
    try:
        return attribute, int(raw_target)
    except (TypeError, ValueError):
        return None


def career_key(name: str | None) -> str:
    return str(name or "").strip().lower()


def career_progress_requirement(career: Mapping[str, Any] | None, section: str, assignment: str | None):
    progress = (career or {}).get("career_progress") or {}
    table = progress.get(section) if isinstance(progress, Mapping) else None
    if not isinstance(table, Mapping) or assignment is None:
        return None
    if assignment in table:
        return first_requirement(table[assignment])
    lowered = str(assignment).strip().lower()
    for key, value in table.items():
        if str(key).strip().lower() == lowered:
            return first_requirement(value)
    return None


def commission_requirement(career: Mapping[str, Any] | None):
    data = career or {}
    if not data.get("hasCommission"):
        return None
    return first_requirement(data.get("commission") or data.get("comission"))


def _rank_section(section: Any, assignment: str | None, commissioned: bool) -> Mapping[Any, Any] | None:
    if not isinstance(section, Mapping) or not section:
        return None
    if all(str(key).lstrip("-").isdigit() for key in section):
        return section
    candidates: list[str] = []
    if commissioned:
        candidates.append("officer")
    if assignment:
        candidates.extend([assignment, str(assignment).strip().lower()])
    candidates.extend(["enlisted", "default"])
    for key in candidates:
        value = section.get(key)
        if isinstance(value, Mapping):
            return value
    return None


def rank_title(career: Mapping[str, Any] | None, assignment: str | None, rank: int, commissioned: bool = False) -> str:
    ranks = _rank_section((career or {}).get("ranks"), assignment, commissioned)
    title = table_entry(ranks, int(rank))
    return str(title) if title else ""


def rank_bonus(career: Mapping[str, Any] | None, assignment: str | None, rank: int, commissioned: bool = False) -> Any:
    bonuses = _rank_section((career or {}).get("rank_bonus"), assignment, commissioned)
    return table_entry(bonuses, int(rank))


def specialist_table_keys(career: Mapping[str, Any] | None) -> list[str]:
    skills = (career or {}).get("skills_and_training")
    if not isinstance(skills, Mapping):
        return []
    return [str(key) for key in skills if str(key) not in CORE_SKILL_TABLE_KEYS and isinstance(skills[key], Mapping)]


def find_career(careers: Mapping[str, Any] | None, name: str | None) -> Mapping[str, Any] | None:
    if not isinstance(careers, Mapping) or not name:
        return None
    key = career_key(name)
    data = careers.get(key)
    if isinstance(data, Mapping):
        return data
    for candidate, value in careers.items():
        if not isinstance(value, Mapping):
            continue
        if career_key(candidate) == key or career_key(value.get("name")) == key:
            return value
    return None
