"""
Address format classification.

Decides which regional format an address string follows so the geocoding
resolver can pick the matching query-variant strategies. Checks run in a
fixed priority (UK, US, IT) and the first match wins.
"""

import re
from enum import Enum


class Country(str, Enum):
    US = "US"
    UK = "UK"
    IT = "IT"
    OTHER = "OTHER"


UK_POSTCODE_RE = re.compile(r"\b([A-Z]{1,2}\d{1,2}[A-Z]?\s?\d[A-Z]{2})\b", re.IGNORECASE)
UK_TOKENS_RE = re.compile(r"\bUK\b|(?i:\b(?:united kingdom|england|scotland|wales|great britain)\b)")

US_STATES = (
    "AL|AK|AZ|AR|CA|CO|CT|DE|DC|FL|GA|HI|ID|IL|IN|IA|KS|KY|LA|ME|MD|MA|MI|MN|MS|MO|MT|NE|NV|NH|"
    "NJ|NM|NY|NC|ND|OH|OK|OR|PA|RI|SC|SD|TN|TX|UT|VT|VA|WA|WV|WI|WY"
)
# "..., CA 94103" or a ZIP+4. A bare 5-digit number is not enough:
# Italian postcodes (CAP) have the same shape.
US_STATE_ZIP_RE = re.compile(rf",\s*(?:{US_STATES})\s+\d{{5}}(?:-\d{{4}})?\b|\b\d{{5}}-\d{{4}}\b")
# "..., CA" alone. Italian province codes (MI, CO, PA, CA, MO) collide with it.
US_STATE_RE = re.compile(rf",\s*(?:{US_STATES})\s*(?:,|$)")
US_TOKENS_RE = re.compile(r"\bUSA\b|\bU\.S\.A\.|(?i:\bunited states\b)")

IT_STREET_TYPES = ("Via", "Viale", "Piazza", "Piazzale", "Corso", "Vicolo", "Largo", "Strada", "Ripa", "Alzaia")
IT_STREET_RE = re.compile(rf"\b(?:{'|'.join(IT_STREET_TYPES)})\b", re.IGNORECASE)
IT_CITIES = (
    "Milano", "Milan", "Roma", "Rome", "Firenze", "Florence", "Torino", "Turin", "Napoli", "Naples",
    "Bologna", "Genova", "Genoa", "Palermo", "Venezia", "Venice", "Padova", "Verona", "Bergamo",
    "Monza", "Pavia", "Pisa", "Trieste", "Bari",
)
IT_CITY_RE = re.compile(rf"\b(?:{'|'.join(IT_CITIES)})\b", re.IGNORECASE)
IT_TOKENS_RE = re.compile(r"\bIT\b|(?i:\b(?:italia|italy)\b)")


def detect_country(address: str) -> Country:
    """Classify a single-line address into US, UK, IT or OTHER."""
    if not address:
        return Country.OTHER

    if UK_POSTCODE_RE.search(address) or UK_TOKENS_RE.search(address):
        return Country.UK
    if US_STATE_ZIP_RE.search(address) or US_TOKENS_RE.search(address):
        return Country.US
    # A bare state code only counts when nothing marks the address as Italian
    italian_marker = IT_STREET_RE.search(address) or IT_TOKENS_RE.search(address)
    if US_STATE_RE.search(address) and not italian_marker:
        return Country.US
    if italian_marker or IT_CITY_RE.search(address):
        return Country.IT
    return Country.OTHER
