from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from models import CategoryKind, CategoryPriority, PaymentMethod, TransactionType


class RegisterIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=120)
    email: EmailStr
    # bcrypt only looks at the first 72 bytes.
    password: str = Field(..., min_length=6, max_length=72)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)


class ForgotPasswordIn(BaseModel):
    email: EmailStr


class ResetPasswordIn(BaseModel):
    token: str = Field(..., min_length=10)
    password: str = Field(..., min_length=8, max_length=72)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    kind: CategoryKind
    priority: CategoryPriority
    monthly_budget_cents: Optional[int] = Field(default=None, ge=0)


class CategoryUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    kind: Optional[CategoryKind] = None
    priority: Optional[CategoryPriority] = None
    monthly_budget_cents: Optional[int] = Field(default=None, ge=0)


class TransactionIn(BaseModel):
    type: TransactionType
    amount_cents: int = Field(..., gt=0)
    date: datetime
    category_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=200)
    method: PaymentMethod
    tag: Optional[str] = Field(default=None, max_length=30)


class TransactionUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Optional[TransactionType] = None
    amount_cents: Optional[int] = Field(default=None, gt=0)
    date: Optional[datetime] = None
    category_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=200)
    method: Optional[PaymentMethod] = None
    tag: Optional[str] = Field(default=None, max_length=30)


class CalculatorRunIn(BaseModel):
    type: str = Field(..., min_length=1)
    params: dict[str, Any]
    title: Optional[str] = Field(default=None, min_length=1, max_length=80)
