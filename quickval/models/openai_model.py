"""OpenAI-backed narrative valuation report."""

from __future__ import annotations

from typing import Optional

from openai import AsyncOpenAI

from .base import ReportRequest


def _money(value) -> str:
    return f"${value:,.0f}" if value else "N/A"


def build_prompt(request: ReportRequest) -> str:
    """Render the target property, top comparables and statistics into the prompt."""
    prop = request.property

    comparables_text = ""
    if request.comparables:
        comparables_text = "COMPARABLE SOLD PROPERTIES:\n"
        for comp in request.comparables[:5]:
            comparables_text += (
                f"- {comp.address}: {_money(comp.price)} | {comp.beds or 'N/A'} bed, "
                f"{comp.baths or 'N/A'} bath | Sold: {comp.sold_date or 'Recently'}"
                f" | Match score: {comp.score if comp.score is not None else 'N/A'}\n"
            )

    stats_text = ""
    stats = request.statistics or {}
    if stats.get("total_found"):
        pr = stats.get("price_range") or {}
        stats_text = (
            f"MARKET STATISTICS ({stats['total_found']} comparable properties):\n"
            f"- Price Range: {_money(pr.get('min'))} - {_money(pr.get('max'))}\n"
            f"- Average Price: {_money(pr.get('avg'))}\n"
            f"- Median Price: {_money(pr.get('median'))}\n"
        )

    avm_text = ""
    if request.avm and request.avm.get("valuation"):
        avm_text = (
            f"AUTOMATED VALUATION: {_money(request.avm['valuation'])} "
            f"({_money(request.avm.get('lower_estimate'))} - {_money(request.avm.get('upper_estimate'))}, "
            f"confidence {request.avm.get('confidence') or 'N/A'})\n"
        )

    asking = _money(prop.get("price")) if prop.get("price") else "Not specified"
    return f"""You are an expert Australian property valuer with deep knowledge of local markets. Generate a detailed property valuation report.

SUBJECT PROPERTY:
- Address/Location: {prop.get('location')}
- Type: {prop.get('property_type') or 'House'}
- Configuration: {prop.get('beds')} bed, {prop.get('baths')} bath, {prop.get('carpark') or 0} car
- Size: {prop.get('size') or 'Not specified'} sqm
- Asking Price: {asking}
- Features: {prop.get('features') or 'Standard'}

{comparables_text}
{stats_text}
{avm_text}
Please provide:

### Estimated Value Range
- Conservative: $X
- Market Value: $Y
- Premium/Well-Presented: $Z

### Comparable Sales Analysis
### Market Insights
### Pricing Strategy Recommendation
### Notes

Be specific and use real suburb knowledge rather than generic statements."""


class OpenAIReportWriter:
    name = "openai"

    def __init__(self, api_key: Optional[str], model: str = "gpt-4o", max_tokens: int = 2500,
                 client: Optional[AsyncOpenAI] = None):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        # one client (and its connection pool) per writer
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def write(self, request: ReportRequest) -> str:
        """Call OpenAI's chat completion API for the narrative report.

        Raises
        ------
        RuntimeError
            When no credential is configured, the call fails, or the reply is empty.
        """
        if not self.api_key and self._client is None:
            raise RuntimeError("OPENAI_API_KEY missing from settings")

        client = self._get_client()
        try:
            completion = await client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": build_prompt(request)}],
                max_tokens=self.max_tokens,
                temperature=0.7,
            )
        except Exception as exc:  # network, auth, quota
            raise RuntimeError("Error invoking OpenAI API") from exc

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise RuntimeError("OpenAI returned an empty report")
        return content
