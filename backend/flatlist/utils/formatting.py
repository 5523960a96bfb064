"""Display helpers for prices, sizes and listing type."""

import json
from typing import Optional, Union

SQFT_TO_SQM = 0.092903

CURRENCY_SYMBOLS = {
    "EUR": "€",
    "USD": "$",
    "GBP": "£",
    "CHF": "CHF ",
    "CAD": "C$",
    "AUD": "A$",
}

RENTAL_KEYWORDS = ["affitto", "rent", "rental", "noleggio", "locazione", "/mo", "/mese", "mensile", "monthly"]
SALE_KEYWORDS = ["vendita", "sale", "compravendita", "acquisto", "buy"]


def format_price(
    price: Optional[Union[float, int, str]],
    is_rent: bool = False,
    currency: Optional[str] = None,
) -> Optional[str]:
    """Format a price with its currency symbol, e.g. 850 EUR rent -> "€850/mo"."""
    if not price:
        return None
    if isinstance(price, str):
        if is_rent and "/mo" not in price:
            return f"{price}/mo"
        return price

    code = (currency or "EUR").upper()
    symbol = CURRENCY_SYMBOLS.get(code, f"{code} ")
    amount = f"{price:,.0f}" if float(price).is_integer() else f"{price:,.2f}"
    formatted = f"{symbol}{amount}"
    return f"{formatted}/mo" if is_rent else formatted


def format_size(size_sqm: Optional[float], size_unit: Optional[str] = None) -> Optional[str]:
    """Render a stored sqm size in the unit the listing originally used."""
    if not size_sqm:
        return None
    if size_unit == "sqft":
        return f"{round(size_sqm / SQFT_TO_SQM)} sq ft"
    return f"{round(size_sqm)} m²"


def is_rental(raw_content: Optional[str], title: Optional[str], listing_type: Optional[str]) -> bool:
    """Listing type wins; otherwise sale keywords beat rental keywords."""
    if listing_type == "rent":
        return True
    if listing_type == "sale":
        return False

    combined = f"{(raw_content or '').lower()} {(title or '').lower()}"
    if any(k in combined for k in SALE_KEYWORDS):
        return False
    return any(k in combined for k in RENTAL_KEYWORDS)


def normalize_images(images) -> Optional[list[str]]:
    """Accept a list, a JSON-encoded list or nothing; empty becomes None."""
    if not images:
        return None
    if isinstance(images, str):
        try:
            images = json.loads(images)
        except json.JSONDecodeError:
            return None
    if isinstance(images, dict):
        images = list(images.values())
    if not isinstance(images, list):
        return None
    urls = [url for url in images if isinstance(url, str) and url.strip()]
    return urls or None
