"""Currency conversion and metadata helpers."""
import asyncio
from typing import Dict, Iterable

import requests

from config import EXCHANGE_RATE_API_URL, EXCHANGE_RATE_TIMEOUT
from logging_config import logger
from services.errors import UpstreamUnavailable

FALLBACK_RATE = 1.0

CURRENCY_SYMBOLS = {
    "USD": "$",
    "GBP": "£",
    "EUR": "€",
    "JPY": "¥",
    "CAD": "CA$",
    "AUD": "A$",
    "CHF": "CHF",
    "CNY": "¥",
    "INR": "₹",
    "SGD": "S$",
    "KES": "KSh",
    "ZAR": "R",
    "NGN": "₦",
    "BRL": "R$",
    "MXN": "MX$",
}


def currency_symbol(currency_code: str) -> str:
    """Display symbol for a currency code; the code itself when unknown."""
    code = (currency_code or "").upper()
    return CURRENCY_SYMBOLS.get(code, code or "$")


def fetch_rate(source_currency: str, target_currency: str) -> float:
    """Rate to multiply a source_currency amount by to get target_currency."""
    source = source_currency.upper()
    target = target_currency.upper()
    if source == target:
        return 1.0

    try:
        response = requests.get(rate_url(source), timeout=EXCHANGE_RATE_TIMEOUT)
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as e:
        raise UpstreamUnavailable(f"Exchange rate lookup failed for {source}: {e}")

    rates = payload.get("rates") if isinstance(payload, dict) else None
    if not isinstance(rates, dict):
        raise UpstreamUnavailable(f"Malformed exchange rate response for {source}")
    try:
        rate = float(rates[target])
    except KeyError:
        raise UpstreamUnavailable(f"No {source}->{target} rate in exchange rate response")
    except (TypeError, ValueError):
        raise UpstreamUnavailable(f"Unreadable {source}->{target} rate: {rates[target]!r}")
    if rate <= 0:
        raise UpstreamUnavailable(f"Invalid {source}->{target} rate: {rate}")
    return rate


def rate_url(base_currency: str) -> str:
    return EXCHANGE_RATE_API_URL.format(base=base_currency)


async def get_rate(source_currency: str, target_currency: str) -> float:
    # requests is blocking; keep it off the event loop
    return await asyncio.to_thread(fetch_rate, source_currency, target_currency)


async def get_rate_or_fallback(source_currency: str, target_currency: str) -> float:
    try:
        return await get_rate(source_currency, target_currency)
    except UpstreamUnavailable as e:
        logger.warning(f"Currency conversion unavailable, using rate {FALLBACK_RATE}: {e.message}")
        return FALLBACK_RATE


async def get_rates(source_currencies: Iterable[str], target_currency: str) -> Dict[str, float]:
    """
    One rate per distinct source currency, looked up concurrently.

    The returned dict is the per-request rate cache: callers convert every
    amount from it instead of hitting the rate source again.
    """
    target = target_currency.upper()
    unique = sorted({code.upper() for code in source_currencies if code and code.upper() != target})
    if not unique:
        return {}
    rates = await asyncio.gather(*(get_rate_or_fallback(code, target) for code in unique))
    return dict(zip(unique, rates))


def convert(amount: float, rate: float) -> float:
    return round(amount * rate, 2)
