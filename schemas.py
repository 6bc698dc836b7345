from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import TransactionType, UserRole

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _strip_name(v: object) -> object:
    if isinstance(v, str):
        return v.strip()
    return v


class MessageOut(BaseModel):
    message: str


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    transaction_type: TransactionType

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: object) -> object:
        return _strip_name(v)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str
    transaction_type: TransactionType


class WalletIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    initial_balance_cents: int = 0

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: object) -> object:
        return _strip_name(v)


class WalletUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    initial_balance_cents: Optional[int] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: object) -> object:
        return _strip_name(v)


class WalletOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str
    initial_balance_cents: int
    current_balance_cents: int


class WalletBalanceOut(BaseModel):
    wallet_id: int
    initial_balance_cents: int
    current_balance_cents: int


class TransactionIn(BaseModel):
    from_wallet_id: int
    category_id: Optional[int] = None
    credit_cents: int = Field(default=0, ge=0)
    debit_cents: int = Field(default=0, ge=0)
    description: Optional[str] = Field(default=None, max_length=200)
    occurred_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _exactly_one_side(self) -> "TransactionIn":
        if (self.credit_cents > 0) == (self.debit_cents > 0):
            raise ValueError(
                "A transaction needs exactly one non-zero credit or debit value"
            )
        return self


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    from_wallet_id: int
    category_id: Optional[int]
    credit_cents: int
    debit_cents: int
    description: Optional[str]
    occurred_at: datetime


class UserCreateIn(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=8, max_length=72)
    name: Optional[str] = Field(default=None, max_length=120)


class UserAuthenticateIn(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=1, max_length=72)


class ForgotPasswordIn(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)


class ResetPasswordIn(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8, max_length=72)


class UserUpdateIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=8, max_length=72)
    name: Optional[str] = Field(default=None, max_length=120)
    role: Optional[UserRole] = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: Optional[str]
    role: UserRole
    is_verified: bool
    created_at: datetime


class AuthenticatedUserOut(UserOut):
    authorization_token: str
