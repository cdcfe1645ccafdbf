# ---------------------------------------------------------------------------
# schemas.py
#
# Pydantic request/response models.
#
# These schemas define the public API contract for the FastAPI application.
# They are used for:
# - request validation (inputs)
# - response serialization (outputs, built from ORM rows via from_attributes)
# - OpenAPI documentation generation
# ---------------------------------------------------------------------------

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints


class _OrmOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Ear tag; surrounding whitespace is dropped before the length check.
Brinco = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=256)
    name: Optional[str] = None
    phone: Optional[str] = None


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeOut(_OrmOut):
    id: int
    email: EmailStr
    name: Optional[str] = None
    phone: Optional[str] = None


# ---------------------------------------------------------------------------
# Animals
# ---------------------------------------------------------------------------


class AnimalIn(BaseModel):
    brinco: Brinco
    name: Optional[str] = None
    sex: Optional[Literal["M", "F"]] = None
    breed: Optional[str] = None
    birth_date: Optional[date] = None
    weight_kg: Optional[float] = Field(default=None, ge=0)
    status: Literal["active", "sold", "dead"] = "active"
    notes: Optional[str] = None


class AnimalUpdateIn(BaseModel):
    brinco: Optional[Brinco] = None
    name: Optional[str] = None
    sex: Optional[Literal["M", "F"]] = None
    breed: Optional[str] = None
    birth_date: Optional[date] = None
    weight_kg: Optional[float] = Field(default=None, ge=0)
    status: Optional[Literal["active", "sold", "dead"]] = None
    notes: Optional[str] = None


class AnimalOut(_OrmOut):
    id: int
    brinco: str
    name: Optional[str] = None
    sex: Optional[str] = None
    breed: Optional[str] = None
    birth_date: Optional[date] = None
    weight_kg: Optional[float] = None
    status: str
    notes: Optional[str] = None
    life_stage: Optional[str] = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Health records
# ---------------------------------------------------------------------------


class HealthRecordIn(BaseModel):
    animal_id: Optional[int] = None
    brinco: Optional[Brinco] = None
    type: str = Field(min_length=1, max_length=64)
    product: Optional[str] = None
    date: datetime
    notes: Optional[str] = None


class HealthRecordOut(_OrmOut):
    id: int
    animal_id: Optional[int] = None
    brinco: Optional[str] = None
    type: str
    product: Optional[str] = None
    date: datetime
    notes: Optional[str] = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


class CostConfigIn(BaseModel):
    price_per_head: float = Field(ge=0)
    currency: str = Field(default="BRL", min_length=3, max_length=3)


class CostConfigOut(_OrmOut):
    price_per_head: float
    currency: str


class PaymentIn(BaseModel):
    amount: float = Field(gt=0)
    currency: str = Field(default="BRL", min_length=3, max_length=3)
    status: Literal["pending", "paid", "failed"] = "pending"
    reference: Optional[str] = None


class PaymentOut(_OrmOut):
    id: int
    amount: float
    currency: str
    status: str
    reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime


class PaymentSummaryOut(BaseModel):
    active_animals: int
    price_per_head: float
    currency: str
    monthly_total: float
    total_paid: float


# ---------------------------------------------------------------------------
# WhatsApp webhook
# ---------------------------------------------------------------------------


class WebhookAckOut(BaseModel):
    status: str = "ok"
    processed: int = 0
    details: List[Dict[str, Any]] = Field(default_factory=list)
