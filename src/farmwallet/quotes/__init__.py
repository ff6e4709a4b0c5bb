"""Quote fetching with a short-lived in-memory cache."""

from .cache import QuoteCache
from .client import Quote, QuoteClient, apply_quotes
from .providers import StaticProvider, YFinanceProvider

__all__ = ["Quote", "QuoteCache", "QuoteClient", "StaticProvider", "YFinanceProvider", "apply_quotes"]
