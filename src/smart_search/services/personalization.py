"""Personalization signals built on top of the behavior store.

Turns a client's history into an interest profile, ranks visited stores and
unviewed catalog products, suggests past searches and builds catalog filters
from a query analysis.
"""

from collections import defaultdict
from collections.abc import Mapping, Sequence
from typing import Any

import structlog

from shared.constants import (
    FOR_YOU_CATEGORY_WEIGHT,
    FOR_YOU_DISCOUNT_WEIGHT,
    FOR_YOU_PRICE_WEIGHT,
    FOR_YOU_STORE_WEIGHT,
    PROFILE_ENGAGEMENT_WEIGHT,
    PROFILE_SEARCH_WEIGHT,
    PROFILE_TOP_CATEGORIES,
    PROFILE_TOP_VIEWED,
    PROFILE_VIEW_WEIGHT,
)
from smart_search.models import (
    Analysis,
    BehaviorSnapshot,
    Intent,
    InterestProfile,
    ProductCandidate,
    ProductRecommendation,
    TargetType,
)
from smart_search.services.behavior_store import (
    BehaviorStore,
    CategoryLookup,
    resolve_category,
)
from smart_search.services.text_analyzer import TextAnalyzer, canonical_category

logger = structlog.get_logger()


class PersonalizationService:
    """Derives interest and store preferences from a client's history."""

    # Engagement windows for the interest profile
    RECENT_CLICKS_WINDOW = 5
    RECENT_CLICKED_PRODUCTS = 3
    RECENT_CART_PRODUCTS = 3

    # Cap on minutes of attention counted for store preference
    STORE_MINUTES_CAP = 10

    # Price fit from which a personalized pick mentions the price
    PRICE_REASON_THRESHOLD = 0.8

    def __init__(self, analyzer: TextAnalyzer, behavior_store: BehaviorStore):
        self.analyzer = analyzer
        self.behavior_store = behavior_store

    def interest_profile(
        self,
        category_lookup: CategoryLookup | None = None,
        snapshot: BehaviorSnapshot | None = None,
    ) -> InterestProfile:
        """
        Build category and price preferences from the full history.

        Searches contribute the categories the analyzer detects in them, the
        most viewed products contribute their categories, and recently clicked
        or carted products reinforce theirs. The price preference comes from
        the most recent search carrying a price range.

        Args:
            category_lookup: Product id to category, as a mapping or callable
            snapshot: Pre-read snapshot, to avoid another storage read

        Returns:
            InterestProfile with per-category scores, the top categories and
            an optional price range
        """
        if snapshot is None:
            snapshot = self.behavior_store.read()
        scores: dict[str, float] = defaultdict(float)

        analyses = [self.analyzer.analyze(search.query) for search in snapshot.searches]
        for analysis in analyses:
            for category in analysis.categories:
                scores[category] += PROFILE_SEARCH_WEIGHT

        top_viewed = self.behavior_store.most_viewed(
            TargetType.PRODUCT, PROFILE_TOP_VIEWED, snapshot=snapshot
        )
        for product_id, metrics in top_viewed:
            category = resolve_category(category_lookup, product_id) or metrics.category
            if category:
                scores[canonical_category(category)] += PROFILE_VIEW_WEIGHT

        for product_id in self._recently_engaged_products(snapshot):
            metrics = snapshot.product_views.get(product_id)
            category = resolve_category(category_lookup, product_id) or (
                metrics.category if metrics else None
            )
            if category:
                scores[canonical_category(category)] += PROFILE_ENGAGEMENT_WEIGHT

        ranked = sorted(scores.items(), key=lambda x: x[1], reverse=True)

        price_min = price_max = None
        for analysis in reversed(analyses):
            if analysis.price_range is not None:
                price_min = analysis.price_range.min
                price_max = analysis.price_range.max
                break

        profile = InterestProfile(
            category_scores=dict(ranked),
            top_categories=[category for category, _ in ranked[:PROFILE_TOP_CATEGORIES]],
            price_min=price_min,
            price_max=price_max,
        )
        logger.debug(
            "Built interest profile",
            client_id=self.behavior_store.client_id,
            top_categories=profile.top_categories,
        )
        return profile

    def store_affinity(self, snapshot: BehaviorSnapshot | None = None) -> dict[str, float]:
        """Per-store preference from views and attention, normalized to the top store."""
        if snapshot is None:
            snapshot = self.behavior_store.read()
        raw = {
            store_id: metrics.view_count * 0.7 + self._attention_minutes(metrics.total_duration) * 0.3
            for store_id, metrics in snapshot.store_views.items()
        }
        top = max(raw.values(), default=0.0)
        return {store_id: (value / top if top > 0 else 0.0) for store_id, value in raw.items()}

    def visited_stores(self, limit: int = 5) -> list[tuple[str, float]]:
        """Visited stores ranked by views and attention."""
        snapshot = self.behavior_store.read()
        scored = [
            (
                store_id,
                metrics.view_count * 0.6 + self._attention_minutes(metrics.total_duration) * 0.4,
            )
            for store_id, metrics in snapshot.store_views.items()
        ]
        scored.sort(key=lambda x: x[1], reverse=True)
        return scored[:limit]

    def rank_for_you(
        self,
        candidates: Sequence[ProductCandidate | dict],
        limit: int = 10,
        category_lookup: CategoryLookup | None = None,
    ) -> list[ProductRecommendation]:
        """
        Rank catalog products for the client's personalized feed.

        Products the client already viewed are skipped. The rest are scored
        by interest in their category relative to the top category, fit with
        the preferred price, discount and preference for their store.

        Args:
            candidates: Products supplied by the catalog, as models or dicts;
                duplicate ids keep the first occurrence
            limit: Maximum number of products returned
            category_lookup: Product id to category for ids not among the
                candidates

        Returns:
            Unviewed products, best first
        """
        unique: dict[str, ProductCandidate] = {}
        for candidate in candidates:
            product = ProductCandidate.model_validate(candidate)
            unique.setdefault(product.id, product)

        known = {p.id: p.category for p in unique.values() if p.category}

        def lookup(product_id: str) -> str | None:
            if product_id in known:
                return known[product_id]
            return resolve_category(category_lookup, product_id)

        snapshot = self.behavior_store.read()
        profile = self.interest_profile(lookup, snapshot=snapshot)
        top_score = max(profile.category_scores.values(), default=0.0)
        store_scores = self.store_affinity(snapshot)

        viewed_prices = [p.price for p in unique.values() if p.id in snapshot.product_views]
        average_price = sum(viewed_prices) / len(viewed_prices) if viewed_prices else 0.0

        ranked: list[ProductRecommendation] = []
        for product in unique.values():
            if product.id in snapshot.product_views:
                continue

            category = canonical_category(lookup(product.id))
            category_score = (
                profile.category_scores.get(category, 0.0) / top_score if top_score > 0 else 0.0
            )
            price_score = price_fit(
                product.price, profile.price_min, profile.price_max, average_price
            )
            discount_score = max(product.discount, 0.0) / 100
            store_score = store_scores.get(product.store_id, 0.0) if product.store_id else 0.0

            reasons: list[str] = []
            if category_score > 0:
                reasons.append(f'Te interesa la categoría "{category}"')
            if price_score >= self.PRICE_REASON_THRESHOLD:
                reasons.append("Precio acorde a lo que buscas")
            if discount_score > 0:
                reasons.append(f"{product.discount:g}% de descuento")
            if store_score > 0:
                reasons.append("De una tienda que visitaste")

            score = (
                category_score * FOR_YOU_CATEGORY_WEIGHT
                + price_score * FOR_YOU_PRICE_WEIGHT
                + discount_score * FOR_YOU_DISCOUNT_WEIGHT
                + store_score * FOR_YOU_STORE_WEIGHT
            )
            ranked.append(
                ProductRecommendation(
                    product=product,
                    score=score,
                    reasons=reasons,
                    confidence=min(score, 1.0),
                )
            )

        ranked.sort(key=lambda r: r.score, reverse=True)
        logger.info(
            "Ranked personalized products",
            client_id=self.behavior_store.client_id,
            candidates=len(unique),
            skipped_viewed=len(unique) - len(ranked),
            top_categories=profile.top_categories,
        )
        return ranked[: max(limit, 0)]

    def search_suggestions(self, limit: int = 10) -> list[str]:
        """Distinct past queries, newest first."""
        suggestions: list[str] = []
        seen: set[str] = set()
        for search in self.behavior_store.recent_searches(self.behavior_store.search_history_limit):
            key = search.query.strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)
            suggestions.append(search.query.strip())
            if len(suggestions) >= limit:
                break
        return suggestions

    def _recently_engaged_products(self, snapshot: BehaviorSnapshot) -> list[str]:
        product_clicks = [
            click.target_id for click in snapshot.clicks if click.target_type == TargetType.PRODUCT
        ]
        clicked = _distinct(product_clicks[-self.RECENT_CLICKS_WINDOW:])[-self.RECENT_CLICKED_PRODUCTS:]
        carted = _distinct(
            action.product_id for action in snapshot.cart_actions[-self.RECENT_CART_PRODUCTS:]
        )
        return _distinct(clicked + carted)

    def _attention_minutes(self, duration_ms: int) -> float:
        return min(duration_ms / 60_000, self.STORE_MINUTES_CAP)


def price_fit(
    price: float,
    price_min: float | None = None,
    price_max: float | None = None,
    average_price: float = 0.0,
) -> float:
    """
    Score how well a price fits the client's preference, 0..1.

    With a range, prices inside score 1 and decay linearly with their
    relative distance to the nearest bound. Without one, the score decays
    with the relative distance to the average viewed price.
    """
    if price_min is not None or price_max is not None:
        low = price_min if price_min is not None else price
        high = price_max if price_max is not None else price
        if low <= price <= high:
            return 1.0
        if price < low:
            distance = (low - price) / low if low else 1.0
        else:
            distance = (price - high) / high if high else 1.0
        return max(0.0, 1.0 - distance)

    if average_price <= 0:
        return 0.0
    return max(0.0, 1.0 - abs(price - average_price) / average_price)


def catalog_filters(
    analysis: Analysis,
    category_ids: Mapping[str, Any] | None = None,
    per_page: int = 12,
) -> dict[str, Any]:
    """
    Translate an analysis into catalog query parameters.

    Args:
        analysis: Result of TextAnalyzer.analyze
        category_ids: Catalog category name to id; names are canonicalized
        per_page: Page size requested from the catalog

    Returns:
        Filter dict with sort order, optional category id and price bounds
    """
    by_price = analysis.intent == Intent.PRICE
    filters: dict[str, Any] = {
        "sort_by": "precio" if by_price else "fecha_creacion",
        "sort_order": "asc" if by_price else "desc",
        "per_page": per_page,
    }

    if category_ids:
        canonical_ids = {canonical_category(name): cid for name, cid in category_ids.items()}
        for category in analysis.categories:
            if category in canonical_ids:
                filters["categoria"] = canonical_ids[category]
                break

    if analysis.price_range is not None:
        if analysis.price_range.min is not None:
            filters["precio_min"] = analysis.price_range.min
        if analysis.price_range.max is not None:
            filters["precio_max"] = analysis.price_range.max

    return filters


def _distinct(values) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)
