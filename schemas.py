from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from models import DEFAULT_CATEGORY_COLOR, DEFAULT_CATEGORY_ICON

HEX_COLOR_PATTERN = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    color: str = Field(DEFAULT_CATEGORY_COLOR, pattern=HEX_COLOR_PATTERN)
    icon: Optional[str] = Field(DEFAULT_CATEGORY_ICON, max_length=50)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Category name is required")
        return value


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    color: str
    icon: Optional[str]
    created_at: datetime
    updated_at: datetime


class ExpenseIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    date: datetime
    category: str = Field(..., min_length=1, max_length=64)
    description: Optional[str] = Field(default=None, max_length=500)


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    amount: float
    date: datetime
    category: str
    description: Optional[str]
    created_at: datetime
    updated_at: datetime


class SignUpIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)


class SignInIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class EmailCheckIn(BaseModel):
    email: EmailStr


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    image: Optional[str]
