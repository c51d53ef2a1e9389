"""Static catalog of gallery pricing plans and upgrade helpers."""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional

_GIB = 1024 * 1024 * 1024


class PlanDuration(str, Enum):
    """Subscription durations offered for gallery plans."""

    ONE_MONTH = "1m"
    THREE_MONTHS = "3m"
    TWELVE_MONTHS = "12m"


@dataclass(frozen=True)
class PlanDefinition:
    """Describes a gallery plan: its storage ceiling, duration and price."""

    key: str
    price_cents: int
    storage_limit_bytes: int
    duration: PlanDuration
    expiry_days: int
    label: str


def _plan(size_gb: int, duration: PlanDuration, price_cents: int, expiry_days: int, label: str) -> PlanDefinition:
    return PlanDefinition(
        key=f"{size_gb}GB-{duration.value}",
        price_cents=price_cents,
        storage_limit_bytes=size_gb * _GIB,
        duration=duration,
        expiry_days=expiry_days,
        label=label,
    )


PLAN_CATALOG: Dict[str, PlanDefinition] = {
    plan.key: plan
    for plan in (
        _plan(1, PlanDuration.ONE_MONTH, 500, 30, "1GB - 1 miesiąc"),
        _plan(1, PlanDuration.THREE_MONTHS, 700, 90, "1GB - 3 miesiące"),
        _plan(1, PlanDuration.TWELVE_MONTHS, 1500, 365, "1GB - 12 miesięcy"),
        _plan(3, PlanDuration.ONE_MONTH, 800, 30, "3GB - 1 miesiąc"),
        _plan(3, PlanDuration.THREE_MONTHS, 1000, 90, "3GB - 3 miesiące"),
        _plan(3, PlanDuration.TWELVE_MONTHS, 2100, 365, "3GB - 12 miesięcy"),
        _plan(10, PlanDuration.ONE_MONTH, 1000, 30, "10GB - 1 miesiąc"),
        _plan(10, PlanDuration.THREE_MONTHS, 1200, 90, "10GB - 3 miesiące"),
        _plan(10, PlanDuration.TWELVE_MONTHS, 2600, 365, "10GB - 12 miesięcy"),
    )
}

NON_SELECTION_DISCOUNT = 0.8


def get_plan(plan_key: Optional[str], catalog: Mapping[str, PlanDefinition] = PLAN_CATALOG) -> Optional[PlanDefinition]:
    """Return a plan definition, or ``None`` when the key is unknown."""

    if not plan_key:
        return None
    return catalog.get(plan_key)


def duration_of(plan_key: Optional[str], catalog: Mapping[str, PlanDefinition] = PLAN_CATALOG) -> Optional[PlanDuration]:
    plan = get_plan(plan_key, catalog)
    return plan.duration if plan else None


def plans_sorted_by_storage(catalog: Mapping[str, PlanDefinition] = PLAN_CATALOG) -> List[PlanDefinition]:
    # sorted() is stable, so equal ceilings keep catalog order
    return sorted(catalog.values(), key=lambda plan: plan.storage_limit_bytes)


def plans_for_duration(
    duration: PlanDuration,
    catalog: Mapping[str, PlanDefinition] = PLAN_CATALOG,
) -> List[PlanDefinition]:
    return [plan for plan in plans_sorted_by_storage(catalog) if plan.duration == duration]


def suggest_upgrade(
    current_plan_key: Optional[str],
    projected_bytes: int,
    catalog: Mapping[str, PlanDefinition] = PLAN_CATALOG,
) -> Optional[PlanDefinition]:
    """Pick the cheapest tier that accommodates ``projected_bytes``.

    With a current plan, only plans of the same duration whose ceiling is
    strictly larger than the current one and at least the projected usage
    qualify; the smallest such ceiling wins, falling back to the largest plan
    of that duration. Without a plan, the smallest plan of any duration that
    fits wins, falling back to the largest plan overall.
    """

    if not current_plan_key:
        ordered = plans_sorted_by_storage(catalog)
        if not ordered:
            return None
        for plan in ordered:
            if plan.storage_limit_bytes >= projected_bytes:
                return plan
        return ordered[-1]

    duration = duration_of(current_plan_key, catalog)
    if duration is None:
        return None

    current = catalog[current_plan_key]
    same_duration = plans_for_duration(duration, catalog)
    for plan in same_duration:
        if (
            plan.storage_limit_bytes > current.storage_limit_bytes
            and plan.storage_limit_bytes >= projected_bytes
        ):
            return plan
    return same_duration[-1] if same_duration else None


def price_with_discount(plan: PlanDefinition, selection_enabled: bool) -> int:
    """Price in cents; galleries without client selection get 20% off."""

    if selection_enabled:
        return plan.price_cents
    return int(math.floor(plan.price_cents * NON_SELECTION_DISCOUNT + 0.5))


__all__ = [
    "NON_SELECTION_DISCOUNT",
    "PLAN_CATALOG",
    "PlanDefinition",
    "PlanDuration",
    "duration_of",
    "get_plan",
    "plans_for_duration",
    "plans_sorted_by_storage",
    "price_with_discount",
    "suggest_upgrade",
]
