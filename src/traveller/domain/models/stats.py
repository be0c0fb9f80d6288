from __future__ import annotations

from typing import Any, Mapping


ATTRIBUTE_ORDER = ("STR", "DEX", "END", "INT", "EDU", "SOC")
ALL_ATTRIBUTES = ATTRIBUTE_ORDER + ("PSI",)
PHYSICAL_ATTRIBUTES = ("STR", "DEX", "END")

DEFAULT_ATTRIBUTES: dict[str, int] = {name: 0 for name in ALL_ATTRIBUTES}


def attribute_modifier(value: int | None) -> int:
    try:
        return (int(value) - 6) // 3
    except Exception:
        return 0


def physical_total(attributes: Mapping[str, Any] | None) -> int:
    attrs = attributes or {}
    total = 0
    for name in PHYSICAL_ATTRIBUTES:
        try:
            total += int(attrs.get(name) or 0)
        except Exception:
            continue
    return total


def normalize_attribute_name(raw: str | None) -> str | None:
    name = str(raw or "").strip().upper()
    return name if name in ALL_ATTRIBUTES else None
