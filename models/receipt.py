from pydantic import BaseModel
from typing import Optional
from datetime import date as date_type

class ReceiptScan(BaseModel):
    """Best-effort fields read off a receipt; anything unreadable stays None."""
    amount: Optional[float] = None
    date: Optional[date_type] = None
    description: Optional[str] = None
    category: Optional[str] = None
    currency: Optional[str] = None

class ReceiptUpload(BaseModel):
    receipt_url: str
    filename: str
    content_type: Optional[str] = None
