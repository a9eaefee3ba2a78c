from typing import List, Optional

from .base import ComparableProvider, ValuationProvider
from .corelogic_client import CoreLogicClient
from .domain_client import DomainClient
from .mock_client import MockComparables
from .scraper_client import RealestateScraper
from ..core.config import Settings


def provider_chain(settings: Settings) -> List[ComparableProvider]:
    """
    Providers in priority order: CoreLogic → Domain → public-page scraper.
    Credentialed providers are only included when their keys are configured.
    """
    if settings.PROVIDER_MODE == "mock":
        return [MockComparables()]

    chain: List[ComparableProvider] = []
    corelogic = _corelogic(settings)
    if corelogic:
        chain.append(corelogic)
    if settings.DOMAIN_API_KEY:
        chain.append(DomainClient(settings.DOMAIN_BASE_URL, settings.DOMAIN_API_KEY,
                                  timeout=settings.PROVIDER_TIMEOUT_SECONDS))
    if settings.SCRAPER_ENABLED:
        chain.append(RealestateScraper(settings.SCRAPER_BASE_URL,
                                       timeout=settings.PROVIDER_TIMEOUT_SECONDS))
    return chain


def valuation_provider(settings: Settings) -> Optional[ValuationProvider]:
    """AVM source; only the primary provider offers one."""
    if settings.PROVIDER_MODE == "mock":
        return None
    return _corelogic(settings)


def _corelogic(settings: Settings) -> Optional[CoreLogicClient]:
    if settings.CORELOGIC_CLIENT_KEY and settings.CORELOGIC_SECRET_KEY:
        return CoreLogicClient(settings.CORELOGIC_BASE_URL, settings.CORELOGIC_CLIENT_KEY,
                               settings.CORELOGIC_SECRET_KEY, timeout=settings.PROVIDER_TIMEOUT_SECONDS)
    return None
