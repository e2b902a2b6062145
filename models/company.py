from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime

class Company(BaseModel):
    id: str
    name: str
    currency: str
    currency_symbol: str = "$"
    approval_threshold: float = 1000
    require_manager_approval: bool = True
    require_admin_approval: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    approval_threshold: Optional[float] = Field(None, ge=0)
    require_manager_approval: Optional[bool] = None
    require_admin_approval: Optional[bool] = None

    @field_validator('currency')
    @classmethod
    def currency_upper(cls, v):
        return v.upper() if v is not None else v
