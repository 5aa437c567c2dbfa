from .chain_data import ChainDataClient
from .holdings import HoldingsService
from .pricing import PricingClient, map_with_concurrency

__all__ = ["ChainDataClient", "HoldingsService", "PricingClient", "map_with_concurrency"]
