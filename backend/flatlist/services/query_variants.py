"""
Geocoding query variants.

Nominatim is picky about formatting, so a single address or location phrase
is expanded into an ordered list of query strings to try one after another.
Each strategy below is a plain function returning zero or more variants;
the per-country strategy lists fix the order, and the order is part of the
contract: earlier variants win.
"""

import re
from typing import Callable, Optional

from flatlist.services.country_detector import (
    Country,
    IT_CITY_RE,
    IT_STREET_TYPES,
    UK_POSTCODE_RE,
    detect_country,
)
from flatlist.utils.text import normalize_query

VariantStrategy = Callable[[str], list[str]]


def _tidy(address: str) -> str:
    """Collapse whitespace and empty comma-separated parts."""
    address = re.sub(r"\s+", " ", address)
    parts = [p.strip() for p in address.split(",")]
    return ", ".join(p for p in parts if p)


def dedupe(variants: list[str]) -> list[str]:
    seen: set[str] = set()
    unique = []
    for variant in variants:
        variant = variant.strip() if variant else ""
        if variant and variant not in seen:
            seen.add(variant)
            unique.append(variant)
    return unique


def full_query(address: str) -> list[str]:
    return [address.strip()]


# =============================================================================
# US: "123 Main St Apt 4B, Springfield, IL 62701"
# =============================================================================

US_UNIT_RE = re.compile(
    r"(?:#\s*[A-Z0-9-]+|\b(?:Apt|Apartment|Unit|Suite|Ste)\b\.?\s*#?\s*[A-Z0-9-]+)",
    re.IGNORECASE,
)
US_PARTS_RE = re.compile(
    r"^(?P<street>.+?),\s*(?P<city>[^,]+?),\s*(?P<state>[A-Z]{2})"
    r"(?:\s+(?P<zip>\d{5}(?:-\d{4})?))?"
    r"(?:\s*,\s*(?:USA|United States))?\s*$",
    re.IGNORECASE,
)


def us_strip_unit(address: str) -> list[str]:
    return [_tidy(US_UNIT_RE.sub(" ", address))]


def us_decompose(address: str) -> list[str]:
    match = US_PARTS_RE.match(_tidy(US_UNIT_RE.sub(" ", address)))
    if not match:
        return []
    street, city, state, zip_code = (
        match.group("street").strip(),
        match.group("city").strip(),
        match.group("state").upper(),
        match.group("zip"),
    )
    variants = []
    if zip_code:
        variants.append(f"{street}, {city}, {state} {zip_code}")
    variants.append(f"{street}, {city}, {state}")
    variants.append(f"{city}, {state}")
    return variants


# =============================================================================
# UK: "221B Baker Street, London NW1 6XE"
# =============================================================================

def uk_postcode(address: str) -> list[str]:
    match = UK_POSTCODE_RE.search(address)
    return [match.group(1).upper()] if match else []


def uk_city_postcode(address: str) -> list[str]:
    match = UK_POSTCODE_RE.search(address)
    if not match:
        return []
    postcode = match.group(1).upper()

    parts = [p.strip() for p in address.split(",")]
    for idx, part in enumerate(parts):
        if UK_POSTCODE_RE.search(part):
            # "London NW1 6XE" carries the city in the same part
            same_part = UK_POSTCODE_RE.sub("", part).strip()
            if same_part and not re.search(r"\d", same_part):
                return [f"{same_part}, {postcode}"]
            if idx >= 2:
                return [f"{parts[idx - 1]}, {postcode}"]
            return []
    return []


# =============================================================================
# IT: "Via Cicognara Leopoldo, 2, Plebisciti - Susa, Milano"
# =============================================================================

IT_STREET_PREFIX = "|".join(IT_STREET_TYPES)
IT_STREET_SEGMENT_RE = re.compile(rf"\b((?:{IT_STREET_PREFIX})\s+[^,]+)", re.IGNORECASE)
IT_NAME_SWAP_RE = re.compile(
    rf"^(?P<type>{IT_STREET_PREFIX})\s+(?P<first>[A-Z][\w'.]+)\s+(?P<second>[A-Z][\w'.]+)(?P<rest>(?:\s+\d+\w*)?)$",
    re.IGNORECASE,
)
IT_LEADING_NUMBER_RE = re.compile(rf"^(?P<number>\d+\w*)\s+(?P<street>(?:{IT_STREET_PREFIX})\s+.+)$", re.IGNORECASE)
CIVIC_NUMBER_RE = re.compile(r"^\d+[A-Za-z]?(?:/\w+)?$")
IT_CONNECTIVES = {"di", "del", "della", "dei", "degli", "delle", "dello", "da", "de", "san", "santa", "sant"}


def it_reorder_street(address: str) -> list[str]:
    """
    Reorder the street segment into the "Via <Name> <number>" shape.

    Handles "Via Roma, 12" (civic number split off), "12 Via Roma" (number
    first) and listing-portal style "Via Cicognara Leopoldo" (surname first),
    which OSM records as "Via Leopoldo Cicognara".
    """
    parts = [p.strip() for p in address.split(",")]
    street_idx = next((i for i, p in enumerate(parts) if IT_STREET_SEGMENT_RE.search(p)), None)
    if street_idx is None:
        return []

    rest = parts[:street_idx] + parts[street_idx + 1:]
    street = parts[street_idx]

    leading = IT_LEADING_NUMBER_RE.match(street)
    if leading:
        street = f"{leading.group('street')} {leading.group('number')}"

    if street_idx + 1 < len(parts) and CIVIC_NUMBER_RE.match(parts[street_idx + 1]):
        street = f"{street} {parts[street_idx + 1]}"
        rest = parts[:street_idx] + parts[street_idx + 2:]

    variants = []
    reordered = _tidy(", ".join(parts[:street_idx] + [street] + rest[street_idx:]))
    if reordered != _tidy(address):
        variants.append(reordered)

    swap = IT_NAME_SWAP_RE.match(street)
    if swap and not {swap.group("first").lower(), swap.group("second").lower()} & IT_CONNECTIVES:
        swapped = f"{swap.group('type')} {swap.group('second')} {swap.group('first')}{swap.group('rest')}"
        variants.append(_tidy(", ".join(parts[:street_idx] + [swapped] + rest[street_idx:])))

    return variants


def it_drop_neighborhood(address: str) -> list[str]:
    """Drop qualifiers between the street and the city ("Plebisciti - Susa")."""
    parts = [p.strip() for p in address.split(",")]
    city_idx = next((i for i in range(1, len(parts)) if IT_CITY_RE.search(parts[i])), None)
    if city_idx is None or city_idx <= 1:
        return []
    middle = [p for p in parts[1:city_idx] if CIVIC_NUMBER_RE.match(p) or re.fullmatch(r"\d{5}", p)]
    return [_tidy(", ".join([parts[0]] + middle + parts[city_idx:]))]


def it_street_city(address: str) -> list[str]:
    street = IT_STREET_SEGMENT_RE.search(address)
    city = IT_CITY_RE.search(address)
    if not street or not city:
        return []
    street_name = street.group(1).strip()
    city_name = city.group(0)
    if city_name.lower() in street_name.lower().split():
        # "Via Roma 12" names a street after a city; find a later city mention
        later = IT_CITY_RE.search(address, street.end())
        if not later:
            return []
        city_name = later.group(0)
    return [f"{street_name}, {city_name}", f"{street_name}, {city_name}, Italy"]


ADDRESS_STRATEGIES: dict[Country, list[VariantStrategy]] = {
    Country.US: [full_query, us_strip_unit, us_decompose],
    Country.UK: [full_query, uk_postcode, uk_city_postcode],
    Country.IT: [full_query, it_reorder_street, it_drop_neighborhood, it_street_city],
    Country.OTHER: [full_query],
}


def address_variants(address: str, country: Optional[Country] = None) -> list[str]:
    """Ordered, de-duplicated geocoding queries for a structured address."""
    if not address or not address.strip():
        return []
    country = country or detect_country(address)
    variants: list[str] = []
    for strategy in ADDRESS_STRATEGIES[country]:
        variants.extend(strategy(address))
    return dedupe(variants)


# =============================================================================
# Phrases: "Susa metro station Milan", "Politecnico campus Bovisa Milano"
# =============================================================================

ARTICLES = {
    "the", "a", "an", "of", "at", "in", "to",
    "di", "del", "della", "dei", "degli", "delle", "dello", "il", "lo", "la", "le", "gli",
}
GENERIC_NOUNS = {
    "station", "stazione", "metro", "metropolitana", "subway", "underground", "tube", "stop", "fermata",
    "line", "linea", "university", "universita", "college", "school",
}
COUNTRY_NAMES = {
    "italy", "italia", "usa", "us", "uk", "united", "states", "kingdom", "england",
    "france", "germany", "spain", "netherlands", "austria",
}
STOPWORDS = ARTICLES | GENERIC_NOUNS | COUNTRY_NAMES
CAMPUS_INDICATORS = {"campus", "sede"}
UNIVERSITY_TOKENS = {"politecnico", "bocconi", "cattolica", "bicocca", "statale", "iulm", "sapienza", "luiss"}
METRO_TOKENS = {"metro", "metropolitana", "station", "stazione", "fermata", "subway", "underground", "tube"}
LINE_ID_RE = re.compile(r"^m\d$")
CITY_TOKENS = {
    "milan", "milano", "rome", "roma", "turin", "torino", "florence", "firenze", "bologna",
    "naples", "napoli", "paris", "london", "berlin", "madrid", "barcelona", "amsterdam", "vienna",
}


def _campus_name(tokens: list[str]) -> Optional[str]:
    for idx, token in enumerate(tokens[:-1]):
        if token in CAMPUS_INDICATORS:
            return tokens[idx + 1]
    return None


def strip_stopwords(phrase: str) -> str:
    """Drop articles, generic nouns, line ids and country names; keep campus names."""
    tokens = normalize_query(phrase).split()
    campus = _campus_name(tokens)
    kept = [
        t for t in tokens
        if t == campus
        or (t not in STOPWORDS and t not in CAMPUS_INDICATORS and not LINE_ID_RE.match(t))
    ]
    return " ".join(kept)


def university_variants(phrase: str) -> list[str]:
    tokens = normalize_query(phrase).split()
    university = next((t for t in tokens if t in UNIVERSITY_TOKENS), None)
    if not university:
        return []

    kept = strip_stopwords(phrase).split()
    city = next((t for t in kept if t in CITY_TOKENS), None)
    campus = _campus_name(tokens)
    if not campus and city:
        # A proper noun sandwiched between university and city: "bocconi sarfatti milano"
        start, end = kept.index(university), kept.index(city)
        campus = next((t for t in kept[start + 1:end] if len(t) > 3), None)

    variants = []
    if campus:
        variants.append(" ".join(p for p in (university, campus, city) if p))
    variants.append(" ".join(p for p in (university, city) if p))
    return variants


def station_variants(phrase: str) -> list[str]:
    tokens = normalize_query(phrase).split()
    if not any(t in METRO_TOKENS or LINE_ID_RE.match(t) for t in tokens):
        return []

    kept = strip_stopwords(phrase).split()
    city = next((t for t in kept if t in CITY_TOKENS), None)
    name = " ".join(t for t in kept if t not in CITY_TOKENS and t not in UNIVERSITY_TOKENS)
    if not name:
        return []

    suffix = f" {city}" if city else ""
    return [
        f"Piazzale {name}{suffix}",
        f"Piazza {name}{suffix}",
        f"{name}{suffix} metro",
        f"Via {name}{suffix}",
    ]


def phrase_variants(phrase: str) -> list[str]:
    """
    Ordered, de-duplicated geocoding queries for a colloquial location phrase.

    University and station shapes come first, then the raw phrase, then the
    stopword-stripped fallback.
    """
    if not phrase or not phrase.strip():
        return []
    variants = university_variants(phrase) + station_variants(phrase)
    variants.append(phrase.strip())
    variants.append(strip_stopwords(phrase))
    return dedupe(variants)
