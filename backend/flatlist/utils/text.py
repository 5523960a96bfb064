"""Free-text helpers shared by geocoding, search and inference prompts."""

import re
import unicodedata

TRUNCATION_MARKER = "\n\n[... middle section ...]\n\n"


def normalize_query(text: str) -> str:
    """
    Normalize free text for matching and query generation.

    Lowercases, strips accents, replaces punctuation with spaces and
    collapses whitespace: "Università  Bocconi, Milano!" -> "universita bocconi milano".
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    stripped = re.sub(r"[^a-z0-9\s]", " ", stripped)
    return re.sub(r"\s+", " ", stripped).strip()


def cache_key(text: str) -> str:
    """Case-insensitive, trimmed key for memoizing lookups of the original query."""
    return (text or "").strip().lower()


def truncate_content(content: str, max_length: int) -> str:
    """
    Bound oversized text while keeping its head, middle and tail.

    Text within ``max_length`` is returned unchanged. Otherwise the budget is
    split into three equal slices; the middle slice is centered on the
    midpoint of the original text. Listings often repeat price and address
    at the top and bottom, so both ends are kept verbatim.
    """
    if not content:
        return ""
    if len(content) <= max_length:
        return content

    slice_length = max_length // 3
    head = content[:slice_length]
    tail = content[len(content) - slice_length:] if slice_length else ""
    middle_start = (len(content) - slice_length) // 2
    middle = content[middle_start:middle_start + slice_length]

    return f"{head}{TRUNCATION_MARKER}{middle}{TRUNCATION_MARKER}{tail}"
