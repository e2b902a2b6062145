"""
Receipt OCR.

Sends the receipt image to a vision model through OpenRouter and reads back a
small JSON object. Strictly best-effort: any provider failure or unreadable
answer yields an empty ReceiptScan, never an error.
"""
import asyncio
import base64
import json
import re
import traceback
from datetime import date
from typing import Any, Dict, Optional

from openai import OpenAI

from config import OPENROUTER_API_KEY, OPENROUTER_BASE_URL, RECEIPT_OCR_MODEL, SITE_NAME, SITE_URL
from logging_config import logger
from models.expense import EXPENSE_CATEGORIES
from models.receipt import ReceiptScan

EXTRACTION_PROMPT = f"""You read expense receipts. Look at the attached receipt and answer with a single JSON object, no prose, using these keys:
- "amount": the total amount paid, as a number
- "date": the purchase date as YYYY-MM-DD
- "description": the merchant or vendor name, with a few words about the purchase
- "category": exactly one of {json.dumps(EXPENSE_CATEGORIES)}
- "currency": the ISO 4217 currency code
Use null for anything you cannot read."""

_ai_client: Optional[OpenAI] = None


def get_ai_client() -> OpenAI:
    global _ai_client
    if _ai_client is None:
        _ai_client = OpenAI(base_url=OPENROUTER_BASE_URL, api_key=OPENROUTER_API_KEY)
    return _ai_client


def parse_model_output(text: Optional[str]) -> Dict[str, Any]:
    """First JSON object in the model's answer, tolerating code fences and chatter."""
    if not text:
        return {}
    match = re.search(r"\{.*\}", text, re.DOTALL)
    if not match:
        return {}
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _amount(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, str):
        value = re.sub(r"[^\d.\-]", "", value.replace(",", ""))
    try:
        amount = round(float(value), 2)
    except (TypeError, ValueError):
        return None
    return amount if amount > 0 else None


def _date(value: Any) -> Optional[date]:
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def _category(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return None
    wanted = value.strip().lower()
    for category in EXPENSE_CATEGORIES:
        if category.lower() == wanted:
            return category
    for category in EXPENSE_CATEGORIES:
        if wanted in category.lower() or category.lower().split(" ")[0] in wanted:
            return category
    return "Other"


def _currency(value: Any) -> Optional[str]:
    if isinstance(value, str) and re.fullmatch(r"[A-Za-z]{3}", value.strip()):
        return value.strip().upper()
    return None


def normalize_scan(payload: Dict[str, Any]) -> ReceiptScan:
    description = payload.get("description")
    return ReceiptScan(
        amount=_amount(payload.get("amount")),
        date=_date(payload.get("date")),
        description=description.strip() if isinstance(description, str) and description.strip() else None,
        category=_category(payload.get("category")),
        currency=_currency(payload.get("currency")),
    )


def _ask_model(content: bytes, content_type: str) -> Optional[str]:
    encoded = base64.b64encode(content).decode("utf-8")
    completion = get_ai_client().chat.completions.create(
        extra_headers={
            "HTTP-Referer": SITE_URL,
            "X-Title": SITE_NAME
        },
        model=RECEIPT_OCR_MODEL,
        messages=[{
            "role": "user",
            "content": [
                {"type": "text", "text": EXTRACTION_PROMPT},
                {"type": "image_url", "image_url": {"url": f"data:{content_type};base64,{encoded}"}},
            ]
        }]
    )
    return completion.choices[0].message.content


async def extract(content: bytes, content_type: Optional[str] = None) -> ReceiptScan:
    """Read amount, date, description, category and currency off a receipt."""
    if not content:
        return ReceiptScan()
    if not OPENROUTER_API_KEY:
        logger.warning("Receipt scan skipped: OPENROUTER_API_KEY is not configured")
        return ReceiptScan()

    try:
        answer = await asyncio.to_thread(_ask_model, content, content_type or "image/jpeg")
    except Exception as e:
        logger.warning(f"Receipt OCR provider unavailable: {str(e)}")
        logger.debug(traceback.format_exc())
        return ReceiptScan()

    logger.debug(f"Receipt OCR answer: {(answer or '')[:100]}...")
    return normalize_scan(parse_model_output(answer))
