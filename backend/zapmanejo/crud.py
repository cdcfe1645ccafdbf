# ---------------------------------------------------------------------------
# crud.py
#
# Database CRUD operations and domain-level helpers.
#
# This module encapsulates database access patterns used by the API routers.
# Centralizing DB operations keeps handlers small and consistent.
#
# Design principles:
# - Functions take an explicit SQLAlchemy Session.
# - Every query is scoped to the owning user; another user's rows are a 404.
# - Raise FastAPI HTTPException for domain errors (404/400) as the routes do.
# ---------------------------------------------------------------------------

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import Animal, CostConfig, HealthRecord, LifetimeSlot, Payment, User
from .seed import age_in_months, slot_for_age
from .utils import normalize_phone

DUPLICATE_BRINCO = "An animal with this brinco already exists"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _owned_or_404(db: Session, model: type, obj_id: Any, user_id: int, *, detail: str):
    obj = db.get(model, obj_id)
    if not obj or obj.user_id != user_id:
        raise HTTPException(status_code=404, detail=detail)
    return obj


def _utcnow() -> datetime:
    return datetime.utcnow()


def _commit_unique(db: Session, *, detail: str) -> None:
    """Commit; a unique-constraint race with a concurrent request becomes a 400."""
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail=detail)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.execute(select(User).where(User.email == email.lower())).scalar_one_or_none()


def get_user_by_phone(db: Session, phone: str) -> User | None:
    normalized = normalize_phone(phone)
    if not normalized:
        return None
    return db.execute(select(User).where(User.phone == normalized)).scalars().first()


def create_user(
    db: Session,
    email: str,
    password_hash: str,
    name: str | None = None,
    phone: str | None = None,
) -> User:
    if get_user_by_email(db, email):
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(email=email.lower(), password_hash=password_hash, name=name, phone=normalize_phone(phone))
    db.add(user)
    _commit_unique(db, detail="Email already registered")
    return user


# ---------------------------------------------------------------------------
# Lifetime slots
# ---------------------------------------------------------------------------


def list_lifetime_slots(db: Session) -> list[LifetimeSlot]:
    return db.execute(select(LifetimeSlot).order_by(LifetimeSlot.position)).scalars().all()


def life_stage_code(slots: list[LifetimeSlot], birth_date: date | None, today: date | None = None) -> str | None:
    if birth_date is None:
        return None
    slot = slot_for_age(slots, age_in_months(birth_date, today))
    return slot.code if slot else None


# ---------------------------------------------------------------------------
# Animals
# ---------------------------------------------------------------------------


def list_animals(db: Session, user_id: int, q: str | None = None) -> list[Animal]:
    query = select(Animal).where(Animal.user_id == user_id)
    if q:
        pattern = f"%{q.strip().lower()}%"
        query = query.where(or_(func.lower(Animal.brinco).like(pattern), func.lower(Animal.name).like(pattern)))
    return db.execute(query.order_by(Animal.brinco)).scalars().all()


def get_animal(db: Session, user_id: int, animal_id: int) -> Animal:
    return _owned_or_404(db, Animal, animal_id, user_id, detail="Animal not found")


def get_animal_by_brinco(db: Session, user_id: int, brinco: str) -> Animal | None:
    return db.execute(
        select(Animal).where(Animal.user_id == user_id).where(Animal.brinco == brinco.strip())
    ).scalar_one_or_none()


def create_animal(db: Session, user_id: int, data: dict) -> Animal:
    data = dict(data)
    data["brinco"] = data["brinco"].strip()
    if get_animal_by_brinco(db, user_id, data["brinco"]):
        raise HTTPException(status_code=400, detail=DUPLICATE_BRINCO)

    animal = Animal(user_id=user_id, **data)
    db.add(animal)
    _commit_unique(db, detail=DUPLICATE_BRINCO)
    return animal


def update_animal(db: Session, user_id: int, animal_id: int, changes: dict) -> Animal:
    animal = get_animal(db, user_id, animal_id)

    new_brinco = changes.get("brinco")
    if new_brinco is not None:
        new_brinco = new_brinco.strip()
        other = get_animal_by_brinco(db, user_id, new_brinco)
        if other and other.id != animal.id:
            raise HTTPException(status_code=400, detail=DUPLICATE_BRINCO)
        changes = {**changes, "brinco": new_brinco}

    for field, value in changes.items():
        if value is None and field in ("brinco", "status"):
            continue  # NOT NULL columns
        setattr(animal, field, value)
    animal.updated_at = _utcnow()
    _commit_unique(db, detail=DUPLICATE_BRINCO)
    return animal


def delete_animal(db: Session, user_id: int, animal_id: int) -> None:
    animal = get_animal(db, user_id, animal_id)
    db.delete(animal)
    db.commit()


def count_active_animals(db: Session, user_id: int) -> int:
    return db.execute(
        select(func.count()).select_from(Animal).where(Animal.user_id == user_id).where(Animal.status == "active")
    ).scalar_one()


# ---------------------------------------------------------------------------
# Health records
# ---------------------------------------------------------------------------


def list_health_records(db: Session, user_id: int, animal_id: int | None = None) -> list[HealthRecord]:
    query = select(HealthRecord).where(HealthRecord.user_id == user_id)
    if animal_id is not None:
        query = query.where(HealthRecord.animal_id == animal_id)
    return db.execute(query.order_by(HealthRecord.date.desc(), HealthRecord.id.desc())).scalars().all()


def create_health_record(
    db: Session,
    user_id: int,
    *,
    type: str,
    date: datetime,
    animal_id: int | None = None,
    brinco: str | None = None,
    product: str | None = None,
    notes: str | None = None,
) -> HealthRecord:
    """Create a record, resolving the animal by id or by brinco (either may be omitted)."""
    animal: Optional[Animal] = None
    if animal_id is not None:
        animal = get_animal(db, user_id, animal_id)
    elif brinco:
        animal = get_animal_by_brinco(db, user_id, brinco)
        if animal is None:
            raise HTTPException(status_code=404, detail="Animal not found")

    rec = HealthRecord(
        user_id=user_id,
        animal_id=animal.id if animal else None,
        brinco=animal.brinco if animal else brinco,
        type=type,
        product=product,
        date=date,
        notes=notes,
    )
    db.add(rec)
    db.commit()
    return rec


def delete_health_record(db: Session, user_id: int, record_id: int) -> None:
    rec = _owned_or_404(db, HealthRecord, record_id, user_id, detail="Health record not found")
    db.delete(rec)
    db.commit()


# ---------------------------------------------------------------------------
# Cost config & payments
# ---------------------------------------------------------------------------


def get_cost_config(db: Session, user_id: int) -> CostConfig:
    """Return the user's cost config, or an unsaved zero-priced default."""
    cfg = db.execute(select(CostConfig).where(CostConfig.user_id == user_id)).scalar_one_or_none()
    if cfg is None:
        cfg = CostConfig(user_id=user_id, price_per_head=Decimal("0"), currency="BRL")
    return cfg


def set_cost_config(db: Session, user_id: int, price_per_head: float, currency: str) -> CostConfig:
    cfg = get_cost_config(db, user_id)
    cfg.price_per_head = Decimal(str(price_per_head))
    cfg.currency = currency.upper()
    cfg.updated_at = _utcnow()
    db.add(cfg)
    db.commit()
    return cfg


def list_payments(db: Session, user_id: int, limit: int = 200) -> list[Payment]:
    return db.execute(
        select(Payment).where(Payment.user_id == user_id).order_by(Payment.created_at.desc(), Payment.id.desc()).limit(limit)
    ).scalars().all()


def create_payment(
    db: Session,
    user_id: int,
    amount: float,
    currency: str,
    status: str,
    reference: str | None = None,
) -> Payment:
    payment = Payment(
        user_id=user_id,
        amount=Decimal(str(amount)),
        currency=currency.upper(),
        status=status,
        reference=reference,
        paid_at=_utcnow() if status == "paid" else None,
    )
    db.add(payment)
    db.commit()
    return payment


def total_paid(db: Session, user_id: int) -> Decimal:
    total = db.execute(
        select(func.coalesce(func.sum(Payment.amount), 0))
        .where(Payment.user_id == user_id)
        .where(Payment.status == "paid")
    ).scalar_one()
    return Decimal(str(total))
