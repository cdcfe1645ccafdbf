# ---------------------------------------------------------------------------
# seed.py
#
# Seed Initializer for the lifetime-slot reference table.
#
# The table holds the fixed life-stage classification used to label animals
# by age. It is populated exactly once: the seeder counts rows first and only
# inserts into an empty table, so it can run on every startup.
#
# Seed failures are logged and swallowed; a missing classification only
# disables the `life_stage` field on animal responses.
# ---------------------------------------------------------------------------

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import LifetimeSlot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotSpec:
    code: str
    label: str
    min_months: int
    max_months: Optional[int]  # exclusive; None = open-ended


# Ordered, contiguous age ranges in months.
LIFETIME_SLOTS: tuple[SlotSpec, ...] = (
    SlotSpec("calf", "Bezerro(a)", 0, 8),
    SlotSpec("weaner", "Desmamado(a)", 8, 12),
    SlotSpec("yearling", "Sobreano", 12, 24),
    SlotSpec("young", "Novilha / Garrote", 24, 36),
    SlotSpec("adult", "Adulto(a)", 36, None),
)


class _SlotLike(Protocol):
    code: str
    min_months: int
    max_months: Optional[int]


def needs_seed(count: int) -> bool:
    return count == 0


def count_slots(session: Session) -> int:
    return session.execute(select(func.count()).select_from(LifetimeSlot)).scalar_one()


def seed_lifetime_slots(session: Session) -> int:
    """Insert LIFETIME_SLOTS if the table is empty; return the number of rows inserted."""
    try:
        if not needs_seed(count_slots(session)):
            logger.info("Lifetime slots already present, skipping seed")
            return 0

        session.add_all(
            LifetimeSlot(
                code=spec.code,
                label=spec.label,
                min_months=spec.min_months,
                max_months=spec.max_months,
                position=position,
            )
            for position, spec in enumerate(LIFETIME_SLOTS)
        )
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning("Failed to seed lifetime slots: %s", e)
        return 0

    logger.info("Seeded %d lifetime slots", len(LIFETIME_SLOTS))
    return len(LIFETIME_SLOTS)


def age_in_months(birth_date: date, today: Optional[date] = None) -> int:
    """Whole months elapsed since birth (0 for future dates)."""
    today = today or date.today()
    months = (today.year - birth_date.year) * 12 + (today.month - birth_date.month)
    if today.day < birth_date.day:
        months -= 1
    return max(months, 0)


def slot_for_age(slots: Iterable[_SlotLike], months: int) -> Optional[_SlotLike]:
    """Return the slot whose [min, max) range contains `months`."""
    for slot in slots:
        if months >= slot.min_months and (slot.max_months is None or months < slot.max_months):
            return slot
    return None
