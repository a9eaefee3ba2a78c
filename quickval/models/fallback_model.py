from typing import Any, Dict, Optional

from .base import ReportRequest
from ..core.utils import round_half_up

BASE_VALUE = 500_000
PER_BEDROOM = 100_000
PER_BATHROOM = 50_000
PER_CAR_SPACE = 30_000
PER_SQM = 3_000
ROUND_TO = 10_000
RANGE_SPREAD = 0.05

# Checked in order; first substring match wins ("townhouse" before "house").
TYPE_FACTORS = (
    ("townhouse", 0.85),
    ("terrace", 0.85),
    ("villa", 0.92),
    ("apartment", 0.75),
    ("unit", 0.75),
    ("flat", 0.75),
    ("house", 1.0),
)

DISCLAIMER = (
    "This is a preliminary estimate based on available market data. For an accurate "
    "valuation, please consult a licensed property valuer. Market conditions can change "
    "rapidly and individual property features may significantly impact value."
)


def type_factor(property_type: Optional[str]) -> float:
    text = (property_type or "house").lower()
    for token, factor in TYPE_FACTORS:
        if token in text:
            return factor
    return 1.0


def formula_value(prop: Dict[str, Any]) -> int:
    """Heuristic value from attributes alone, rounded to the nearest 10,000."""
    value = BASE_VALUE
    value += (prop.get("beds") or 0) * PER_BEDROOM
    value += (prop.get("baths") or 0) * PER_BATHROOM
    value += (prop.get("carpark") or 0) * PER_CAR_SPACE
    value += (prop.get("size") or 0) * PER_SQM
    value *= type_factor(prop.get("property_type"))
    return round_half_up(value / ROUND_TO) * ROUND_TO


def estimate_value(prop: Dict[str, Any], statistics: Dict[str, Any]) -> Dict[str, Any]:
    """
    Market estimate with a ±5% conservative/premium band. Uses the comparable
    median (then mean) when there is market data, else the attribute formula.
    """
    price_range = statistics.get("price_range") or {}
    market = price_range.get("median") or price_range.get("avg")
    method = "comparables"
    if not market:
        market = formula_value(prop)
        method = "formula"
    return {
        "conservative": round_half_up(market * (1 - RANGE_SPREAD)),
        "market": int(market),
        "premium": round_half_up(market * (1 + RANGE_SPREAD)),
        "method": method,
    }


def _money(value) -> str:
    return f"${value:,.0f}" if value else "N/A"


class FallbackReportWriter:
    """
    Deterministic report used whenever the narrative writer is unavailable.
    Never raises.
    """
    name = "fallback"

    async def write(self, request: ReportRequest) -> str:
        prop = request.property
        est = request.estimate
        stats = request.statistics or {}
        price_range = stats.get("price_range") or {}

        config = f"{prop.get('beds')} bed, {prop.get('baths')} bath, {prop.get('carpark') or 0} car"
        if prop.get("size"):
            config += f", {prop['size']}sqm"

        lines = [
            "PROPERTY VALUATION REPORT",
            "",
            f"PROPERTY: {prop.get('location')}",
            f"TYPE: {prop.get('property_type') or 'Not specified'}",
            f"CONFIGURATION: {config}",
            "",
            "ESTIMATED VALUE RANGE",
            f"Conservative: {_money(est['conservative'])}",
            f"Market: {_money(est['market'])}",
            f"Premium: {_money(est['premium'])}",
            "",
        ]

        if stats.get("total_found"):
            lines += [
                "MARKET ANALYSIS",
                f"Based on {stats['total_found']} comparable properties in the area:",
                f"- Price Range: {_money(price_range.get('min'))} - {_money(price_range.get('max'))}",
                f"- Average Price: {_money(price_range.get('avg'))}",
                f"- Median Price: {_money(price_range.get('median'))}",
                "",
            ]
            if request.comparables:
                lines.append("RECENT SALES:")
                for comp in request.comparables[:5]:
                    lines.append(
                        f"- {comp.address}: {_money(comp.price)} "
                        f"({comp.beds if comp.beds is not None else 'N/A'} bed, "
                        f"{comp.baths if comp.baths is not None else 'N/A'} bath) - {comp.sold_date or 'Recently'}"
                    )
                lines.append("")
        else:
            lines += [
                "MARKET ANALYSIS",
                "No comparable sales were available; the estimate is based on the property's attributes.",
                "",
            ]

        if request.price_per_sqm:
            lines += [f"PRICE PER SQM: {_money(request.price_per_sqm)}", ""]

        lines += ["DISCLAIMER", DISCLAIMER]
        return "\n".join(lines)
