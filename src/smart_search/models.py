"""Data models shared by the analyzer, behavior store and scorer.

Candidates come from the external catalog; everything else is produced or
persisted by this package.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shared.constants import BEHAVIOR_SCHEMA_VERSION


# =============================================================================
# Enums
# =============================================================================


class Intent(str, Enum):
    """Shopping intent detected in a query, in priority order."""

    BUY = "buy"
    COMPARE = "compare"
    BROWSE = "browse"
    PRICE = "price"
    INFO = "info"


class Sentiment(str, Enum):
    """Polarity of a query."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class SaleType(str, Enum):
    """How a product is sold and fulfilled."""

    DIRECTA = "directa"
    PEDIDO = "pedido"
    DELIVERY = "delivery"


class TargetType(str, Enum):
    """Kind of entity a click or view refers to."""

    PRODUCT = "product"
    STORE = "store"


class CartAction(str, Enum):
    """Cart mutations tracked for a client."""

    ADD = "add"
    REMOVE = "remove"


# =============================================================================
# Query Analysis
# =============================================================================


class PriceRange(BaseModel):
    """Price bounds in guaraníes; either side may be open."""

    min: float | None = None
    max: float | None = None

    @model_validator(mode="after")
    def check_order(self) -> "PriceRange":
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("price range min must not exceed max")
        return self


class Analysis(BaseModel):
    """Structured reading of one free-text query."""

    categories: list[str] = Field(default_factory=list)
    intent: Intent = Intent.BROWSE
    sentiment: Sentiment = Sentiment.NEUTRAL
    urgency: float = Field(0.5, ge=0.0, le=1.0)
    price_range: PriceRange | None = None
    sale_type: SaleType | None = None


# =============================================================================
# Behavior Snapshot
# =============================================================================


class InteractionMetrics(BaseModel):
    """View statistics for a single product or store."""

    view_count: int = Field(0, ge=0)
    total_duration: int = Field(0, ge=0, description="Accumulated view time in ms")
    first_viewed: datetime
    last_viewed: datetime
    category: str | None = None


class SearchRecord(BaseModel):
    query: str
    timestamp: datetime
    results_count: int = 0


class ClickRecord(BaseModel):
    target_type: TargetType
    target_id: str
    context: str
    timestamp: datetime


class CartActionRecord(BaseModel):
    action: CartAction
    product_id: str
    timestamp: datetime


class BehaviorSnapshot(BaseModel):
    """Full interaction history held for one client."""

    schema_version: int = BEHAVIOR_SCHEMA_VERSION
    product_views: dict[str, InteractionMetrics] = Field(default_factory=dict)
    store_views: dict[str, InteractionMetrics] = Field(default_factory=dict)
    searches: list[SearchRecord] = Field(default_factory=list)
    clicks: list[ClickRecord] = Field(default_factory=list)
    cart_actions: list[CartActionRecord] = Field(default_factory=list)


class CategoryInterest(BaseModel):
    category: str
    score: float


class InterestProfile(BaseModel):
    """Category and price preferences derived from a client's history."""

    category_scores: dict[str, float] = Field(default_factory=dict)
    top_categories: list[str] = Field(default_factory=list)
    price_min: float | None = None
    price_max: float | None = None


# =============================================================================
# Aggregated Summary
# =============================================================================


class ProductMetricsSummary(BaseModel):
    product_id: str
    views_count: int
    total_duration_ms: int
    avg_duration_ms: int
    add_to_cart_count: int = 0
    clicks_count: int = 0


class StoreMetricsSummary(BaseModel):
    store_id: str
    views_count: int
    total_duration_ms: int
    avg_duration_ms: int


class SearchMetricsSummary(BaseModel):
    term: str
    search_count: int
    result_clicks: int = 0
    conversion_rate: float = 0.0


class BehaviorSummary(BaseModel):
    """Exportable daily rollup of a client's behavior for backend sync."""

    session_id: str
    date: str
    product_metrics: list[ProductMetricsSummary]
    store_metrics: list[StoreMetricsSummary]
    search_metrics: list[SearchMetricsSummary]


# =============================================================================
# Candidates and Recommendations
# =============================================================================


class ProductCandidate(BaseModel):
    """A product record supplied by the catalog for ranking."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    name: str
    category: str = ""
    description: str = ""
    price: float = 0.0
    sale_type: SaleType | None = None
    store_id: str | None = None
    discount: float = 0.0


class StoreCandidate(BaseModel):
    """A store record supplied by the catalog for ranking."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str
    name: str
    description: str = ""
    categories: list[str] = Field(default_factory=list)
    rating: float = 0.0


class ProductRecommendation(BaseModel):
    product: ProductCandidate
    score: float
    reasons: list[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)


class StoreRecommendation(BaseModel):
    store: StoreCandidate
    score: float
    reasons: list[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)


class RecommendationResult(BaseModel):
    """Ranked products and stores with the analysis that produced them."""

    products: list[ProductRecommendation]
    stores: list[StoreRecommendation]
    analysis: Analysis
    explanation: str
