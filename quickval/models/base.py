from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from ..data.base import ComparableProperty

@dataclass
class ReportRequest:
    """Everything a writer needs: the target, the top comps and the market numbers."""
    property: Dict[str, Any]                 # submitted attributes (location, beds, baths, ...)
    comparables: List[ComparableProperty]    # ranked, best first; writers use the top 5
    statistics: Dict[str, Any]
    estimate: Dict[str, Any]                 # conservative / market / premium
    price_per_sqm: Optional[int] = None
    avm: Optional[Dict[str, Any]] = None
    exact_matches: int = 0
    currency: str = "AUD"
    notes: List[str] = field(default_factory=list)

class ReportWriter(Protocol):
    name: str

    async def write(self, request: ReportRequest) -> str:
        """
        Returns the narrative valuation report, or raises when the writer is
        unavailable (missing credential, quota, network, malformed reply).
        """
        ...
