# Data module
from .market_data import (
    PriceBar,
    OptionType,
    OptionContract,
    OptionExpiry,
    OptionChain,
    MarketDataProvider,
    StaticMarketDataProvider,
    bars_to_frame
)

from .polygon_provider import PolygonMarketDataProvider
