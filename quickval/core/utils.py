import math
import re
from datetime import datetime, timezone
from typing import Iterable, Optional

AUS_STATES = ("NSW", "VIC", "QLD", "SA", "WA", "TAS", "NT", "ACT")
DEFAULT_STATE = "NSW"

_STATE_RE = re.compile(r"\b(" + "|".join(AUS_STATES) + r")\b", re.IGNORECASE)
_POSTCODE_RE = re.compile(r"\b\d{4}\b")
# optional dollar sign, number, optional shorthand suffix: "1.2m", "$850k", "$1,250,000", "1.1 million"
_PRICE_TOKEN_RE = re.compile(
    r"(\$\s*)?(\d[\d,]*(?:\.\d+)?)\s*(million|mil|thousand|m|k)?(?![a-z])", re.IGNORECASE
)
_BARE_NUMBER_RE = re.compile(r"\d[\d,]*(?:\.\d+)?")
_MULTIPLIERS = {"m": 1_000_000, "mil": 1_000_000, "million": 1_000_000, "k": 1_000, "thousand": 1_000}
# Bare numbers below this are bed counts, dates or weekly rents, not sale prices.
MIN_PLAIN_PRICE = 10_000


def normalize_address(addr: str) -> str:
    """
    Minimal normalization so cache keys & dedupe keys are stable:
    - trim whitespace
    - lowercase
    - collapse multiple spaces
    """
    return " ".join(addr.strip().lower().split())


def parse_price(value) -> Optional[int]:
    """
    Recover a sale price from a provider field.

    Accepts ints/floats and strings like "$1,250,000", "1.2m", "$850k" or
    "Offers over $950,000". Inside free text a number only counts when it
    carries a "$" or a shorthand suffix, so phone numbers and street numbers
    are skipped; a field holding nothing but a number ("1450000") is taken
    as-is. Returns None (never 0) when no price is present.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if math.isnan(value) or value <= 0:
            return None
        return int(round(value))

    text = str(value).strip()
    bare = _BARE_NUMBER_RE.fullmatch(text) is not None
    for dollar, number, suffix in _PRICE_TOKEN_RE.findall(text):
        if not (dollar or suffix or bare):
            continue
        try:
            amount = float(number.replace(",", ""))
        except ValueError:
            continue
        if suffix:
            amount *= _MULTIPLIERS[suffix.lower()]
        elif amount < MIN_PLAIN_PRICE:
            continue
        if amount > 0:
            return int(round(amount))
    return None


def parse_float(value) -> Optional[float]:
    """Non-negative measurement (area, distance) from a provider field; None if unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().replace(",", ""))
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return number


def parse_int(value) -> Optional[int]:
    """Room and car-space counts: 3, "3" and 3.0 all give 3; "two" gives None."""
    number = parse_float(value)
    return int(number) if number is not None else None


_DATE_FORMATS = ("%d %b %Y", "%d %B %Y", "%d/%m/%Y", "%Y-%m-%d")


def parse_date(value) -> Optional[datetime]:
    """Parse provider sale dates into tz-aware UTC datetimes; None if unparseable."""
    if isinstance(value, datetime):
        parsed = value
    elif not value or not isinstance(value, str):
        return None
    else:
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
            for fmt in _DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
            if parsed is None:
                return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 away from zero for positives."""
    return int(math.floor(value + 0.5))


def lower_median(values: Iterable[int]) -> Optional[int]:
    """
    Median with the lower-middle tie rule: [100,200,300] -> 200,
    [100,200,300,400] -> 200. Never averages the two middles.
    """
    ordered = sorted(values)
    if not ordered:
        return None
    return ordered[(len(ordered) - 1) // 2]


def parse_location(location: str) -> tuple[str, str, Optional[str], Optional[str]]:
    """
    Split a free-text Australian location into (suburb, state, postcode, street).

    "Bondi, NSW 2026"             -> ("Bondi", "NSW", "2026", None)
    "12 Smith St, Bondi NSW 2026" -> ("Bondi", "NSW", "2026", "12 Smith St")
    """
    parts = [p.strip() for p in (location or "").split(",") if p.strip()]
    suburb = parts[0] if parts else ""
    state = DEFAULT_STATE
    postcode = None

    for i, part in enumerate(parts):
        state_match = _STATE_RE.search(part)
        postcode_match = _POSTCODE_RE.search(part)
        if not (state_match or postcode_match):
            continue
        if state_match:
            state = state_match.group(1).upper()
        if postcode_match:
            postcode = postcode_match.group(0)
        remainder = _POSTCODE_RE.sub("", _STATE_RE.sub("", part))
        remainder = " ".join(remainder.split())
        if remainder and not remainder[0].isdigit():
            suburb = remainder
        elif i > 0:
            suburb = parts[i - 1]
        break

    street = parts[0] if parts and parts[0][:1].isdigit() and parts[0] != suburb else None
    return suburb, state, postcode, street


def fnv1a_32(s: str) -> int:
    """Deterministic, fast hash for seed generation."""
    h = 0x811c9dc5
    for c in s.encode("utf-8"):
        h ^= c
        h = (h * 0x01000193) & 0xFFFFFFFF
    return h


def seeded_rand(seed: int, n: int = 1) -> list[float]:
    """
    Stateless pseudo-random generator (Mulberry32-like) so
    same seed → same outputs without storing PRNG state.
    """
    out = []
    t = (seed + 0x6D2B79F5) & 0xFFFFFFFF
    for _ in range(n):
        t = (t ^ (t >> 15)) * (t | 1) & 0xFFFFFFFF
        t ^= t + ((t ^ (t >> 7)) * (t | 61) & 0xFFFFFFFF)
        r = ((t ^ (t >> 14)) & 0xFFFFFFFF) / 4294967296.0
        out.append(r)
    return out
