import logging
from typing import Awaitable, Callable, Optional

from ..core.utils import round_half_up
from ..models.base import ReportRequest, ReportWriter
from ..models.fallback_model import FallbackReportWriter, estimate_value
from ..schemas import PropertyInput
from .aggregator import ProviderAggregator
from .scoring import ScoringEngine, Target
from .weights import WeightConfigurationStore

logger = logging.getLogger(__name__)

StageCallback = Callable[[str], Awaitable[None]]

TOP_COMPARABLES = 5


async def _no_stage(stage: str) -> None:
    return None


class ValuationService:
    """
    Orchestrates one evaluation:
      location → comparables (cache / providers) → scoring → estimate → report
    Report writing degrades to the deterministic writer; provider and cache
    failures degrade inside the aggregator. Anything else propagates to the
    job runner.
    """
    def __init__(
        self,
        aggregator: ProviderAggregator,
        weights: WeightConfigurationStore,
        writer: Optional[ReportWriter] = None,
        currency: str = "AUD",
    ):
        self.aggregator = aggregator
        self.weights = weights
        self.writer = writer
        self.fallback = FallbackReportWriter()
        self.currency = currency

    async def evaluate(self, prop: PropertyInput, on_stage: StageCallback = _no_stage) -> dict:
        # 1) Comparables
        await on_stage("fetching_data")
        gathered = await self.aggregator.gather(prop.location, prop.beds, prop.baths, prop.property_type)
        if not gathered.comparables:
            logger.info("No comparable data for %s; using basic estimation", prop.location)

        # 2) Score against the active weights
        await on_stage("generating_evaluation")
        active = await self.weights.get_active()
        ranked = ScoringEngine(active).rank(
            Target(beds=prop.beds, baths=prop.baths, property_type=prop.property_type, land_area=prop.size),
            gathered.comparables,
        )

        # 3) Estimate & price per m²
        attrs = prop.model_dump()
        estimate = estimate_value(attrs, gathered.statistics)
        avg = gathered.statistics["price_range"]["avg"]
        price_per_sqm = round_half_up(avg / prop.size) if prop.size and avg else None

        # 4) Narrative report
        request = ReportRequest(
            property=attrs,
            comparables=ranked.comparables[:TOP_COMPARABLES],
            statistics=gathered.statistics,
            estimate=estimate,
            price_per_sqm=price_per_sqm,
            avm=gathered.avm.to_dict() if gathered.avm else None,
            exact_matches=ranked.exact_matches,
            currency=self.currency,
        )
        report, report_source = await self._write(request)

        return {
            "evaluation_report": report,
            "report_source": report_source,
            "valuation": {**estimate, "currency": self.currency},
            "comparables_data": {
                "comparable_sold": [c.to_dict() for c in ranked.comparables],
                "statistics": gathered.statistics,
                "exact_matches": ranked.exact_matches,
                "sources": gathered.sources,
                "cache_hit": gathered.cache_hit,
                "corelogic_avm": request.avm,
                "weights_version": active.version,
            },
            "price_per_sqm": price_per_sqm,
        }

    async def _write(self, request: ReportRequest) -> tuple[str, str]:
        if self.writer is not None:
            try:
                return await self.writer.write(request), self.writer.name
            except Exception as exc:
                logger.warning("Report writer %s unavailable (%s); using fallback", self.writer.name, exc)
        return await self.fallback.write(request), self.fallback.name
