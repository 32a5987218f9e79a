from enum import Enum

class TileType(str, Enum):
    MARKET_SIZE = "market_size"
    COMPETITION = "competition"
    SENTIMENT = "sentiment"
    SEARCH_TRENDS = "search_trends"    # Google Trends style interest data
    SOCIAL_SIGNALS = "social_signals"  # Reddit / Twitter listening
    PMF_SCORE = "pmf_score"            # Composite fit score

class CacheTier(str, Enum):
    PERSISTED = "persisted"
    EPHEMERAL = "ephemeral"

class Origin(str, Enum):
    PERSISTED = "persisted"
    EPHEMERAL = "ephemeral"
    PROVIDER = "provider"

class Freshness(str, Enum):
    LIVE = "live"
    CACHED = "cached"
    STALE = "stale"
    MOCK = "mock"

class ReliabilityTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNVERIFIED = "unverified"

class InsightCategory(str, Enum):
    MARKET = "market"
    COMPETITION = "competition"
    SENTIMENT = "sentiment"
    GENERIC = "generic"
