from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum

class UserRole(str, Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"

class UserBase(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    role: UserRole = UserRole.EMPLOYEE

class UserCreate(UserBase):
    password: str
    manager_id: Optional[str] = None

    @field_validator('password')
    @classmethod
    def password_min_length(cls, v):
        if len(v) < 6:
            raise ValueError('Password must be at least 6 characters')
        return v

class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    manager_id: Optional[str] = None

class User(UserBase):
    id: str
    company_id: str
    manager_id: Optional[str] = None
    created_at: datetime

class CurrentUser(BaseModel):
    """Authenticated caller context resolved from the bearer token."""
    id: str
    name: str
    email: str
    role: UserRole
    company_id: str
    manager_id: Optional[str] = None

class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str
    company_name: str = Field(..., min_length=1)
    currency: str = Field(..., min_length=3, max_length=3)

    @field_validator('password')
    @classmethod
    def password_min_length(cls, v):
        if len(v) < 6:
            raise ValueError('Password must be at least 6 characters')
        return v

    @field_validator('currency')
    @classmethod
    def currency_upper(cls, v):
        return v.upper()

class Token(BaseModel):
    access_token: str
    token_type: str

class TokenResponse(Token):
    user: User
