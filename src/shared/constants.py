"""Shared constants across the application."""

# Persisted behavior record layout version
BEHAVIOR_SCHEMA_VERSION = 1

# Session id reported when no storage backend is attached
NO_STORAGE_SESSION_ID = "ssr"

# Default limits
DEFAULT_MOST_VIEWED_PRODUCTS = 10
DEFAULT_MOST_VIEWED_STORES = 5
DEFAULT_RECENT_SEARCHES = 10
MAX_QUERY_KEYWORDS = 10
MIN_KEYWORD_LENGTH = 3
EXPLANATION_TOP_INTERESTS = 3

# Affinity weights: recency, frequency, duration
AFFINITY_RECENCY_WEIGHT = 0.4
AFFINITY_FREQUENCY_WEIGHT = 0.4
AFFINITY_DURATION_WEIGHT = 0.2

# Recency buckets as (max days since last view, score)
RECENCY_BUCKETS = [
    (1, 1.0),
    (7, 0.8),
    (30, 0.5),
]
RECENCY_FLOOR = 0.2

# Normalizers
FREQUENCY_SATURATION_VIEWS = 10
DURATION_SATURATION_MS = 60_000

# Product scoring
CATEGORY_MATCH_SCORE = 1.5
KEYWORD_MATCH_SCORE = 0.3
SALE_TYPE_MATCH_SCORE = 1.0
URGENCY_THRESHOLD = 0.5
INTEREST_SCORE_DIVISOR = 10
SIMILAR_VIEWED_STEP = 0.2
AFFINITY_SCORE_WEIGHT = 0.3
AFFINITY_REASON_THRESHOLD = 0.5
CONFIDENCE_DIVISOR = 3

# Store scoring
STORE_INTEREST_MATCH_SCORE = 1.0
STORE_QUERY_MATCH_SCORE = 1.5
STORE_RATING_BONUS = 0.5
STORE_RATING_THRESHOLD = 4.5

# Interest profile weights
PROFILE_SEARCH_WEIGHT = 0.5
PROFILE_VIEW_WEIGHT = 1.0
PROFILE_ENGAGEMENT_WEIGHT = 0.7
PROFILE_TOP_VIEWED = 12
PROFILE_TOP_CATEGORIES = 3

# "For you" ranking weights: category, price, discount, store
FOR_YOU_CATEGORY_WEIGHT = 0.4
FOR_YOU_PRICE_WEIGHT = 0.3
FOR_YOU_DISCOUNT_WEIGHT = 0.1
FOR_YOU_STORE_WEIGHT = 0.2
