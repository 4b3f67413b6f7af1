"""Recommendation scorer.

Ranks caller-supplied product and store candidates by fusing three signals:
query understanding, the client's browsing behavior and per-product affinity.
"""

from collections.abc import Callable, Sequence

import structlog

from shared.constants import (
    AFFINITY_REASON_THRESHOLD,
    AFFINITY_SCORE_WEIGHT,
    CATEGORY_MATCH_SCORE,
    CONFIDENCE_DIVISOR,
    EXPLANATION_TOP_INTERESTS,
    INTEREST_SCORE_DIVISOR,
    KEYWORD_MATCH_SCORE,
    SALE_TYPE_MATCH_SCORE,
    SIMILAR_VIEWED_STEP,
    STORE_INTEREST_MATCH_SCORE,
    STORE_QUERY_MATCH_SCORE,
    STORE_RATING_BONUS,
    STORE_RATING_THRESHOLD,
    URGENCY_THRESHOLD,
)
from smart_search.config import Settings, get_settings
from smart_search.models import (
    Analysis,
    BehaviorSnapshot,
    CategoryInterest,
    ProductCandidate,
    ProductRecommendation,
    RecommendationResult,
    SaleType,
    StoreCandidate,
    StoreRecommendation,
    TargetType,
)
from smart_search.services.behavior_store import (
    BehaviorStore,
    CategoryLookup,
    resolve_category,
)
from smart_search.services.text_analyzer import (
    TextAnalyzer,
    canonical_category,
    extract_keywords,
    normalize_text,
)

logger = structlog.get_logger()


class RecommendationScorer:
    """Scores and ranks candidates against a query and the client's history."""

    def __init__(
        self,
        analyzer: TextAnalyzer,
        behavior_store: BehaviorStore,
        category_lookup: CategoryLookup | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.analyzer = analyzer
        self.behavior_store = behavior_store
        self.category_lookup = category_lookup
        self.default_limit = settings.default_recommendation_limit
        self.similar_viewed_window = settings.similar_viewed_window

    def generate(
        self,
        query: str,
        candidate_products: Sequence[ProductCandidate | dict],
        candidate_stores: Sequence[StoreCandidate | dict],
        limit: int | None = None,
        store_limit: int | None = None,
    ) -> RecommendationResult:
        """
        Rank candidates for a query.

        Args:
            query: Raw query text; may be empty for browse-style ranking
            candidate_products: Products supplied by the catalog, as models or dicts
            candidate_stores: Stores supplied by the catalog
            limit: Maximum number of products returned
            store_limit: Maximum number of stores returned, defaults to limit

        Returns:
            Positively scored products and stores in rank order, the query
            analysis and a short human-readable explanation
        """
        if limit is None:
            limit = self.default_limit
        if store_limit is None:
            store_limit = limit
        candidate_products = [ProductCandidate.model_validate(p) for p in candidate_products]
        candidate_stores = [StoreCandidate.model_validate(s) for s in candidate_stores]

        analysis = self.analyzer.analyze(query)
        keywords = extract_keywords(query)

        snapshot = self.behavior_store.read()
        lookup = self._build_lookup(candidate_products)
        interests = self.behavior_store.interest_categories(lookup, snapshot=snapshot)
        most_viewed = self.behavior_store.most_viewed(
            TargetType.PRODUCT, self.similar_viewed_window, snapshot=snapshot
        )
        viewed_categories = [
            canonical_category(lookup(product_id) or metrics.category)
            for product_id, metrics in most_viewed
        ]

        products = [
            self._score_product(
                product, analysis, keywords, interests, viewed_categories, snapshot
            )
            for product in candidate_products
        ]
        # Candidates without any matching signal are not recommendations
        products = [r for r in products if r.score > 0]
        products.sort(key=lambda r: r.score, reverse=True)

        stores = [
            self._score_store(store, analysis, interests) for store in candidate_stores
        ]
        stores = [r for r in stores if r.score > 0]
        stores.sort(key=lambda r: r.score, reverse=True)

        result = RecommendationResult(
            products=products[: max(limit, 0)],
            stores=stores[: max(store_limit, 0)],
            analysis=analysis,
            explanation=self.generate_explanation(analysis, interests),
        )

        logger.info(
            "Generated recommendations",
            client_id=self.behavior_store.client_id,
            intent=analysis.intent.value,
            categories=analysis.categories,
            candidates=len(candidate_products),
            products=len(result.products),
            stores=len(result.stores),
        )
        return result

    def generate_explanation(
        self, analysis: Analysis, interests: list[CategoryInterest]
    ) -> str:
        parts = []
        if analysis.categories:
            parts.append(f"Detecté que buscas productos de: {', '.join(analysis.categories)}")

        parts.append(f"Tu intención parece ser: {analysis.intent.value}")

        if interests:
            top = ", ".join(i.category for i in interests[:EXPLANATION_TOP_INTERESTS])
            parts.append(f"Basándome en tu historial, te interesan: {top}")

        return ". ".join(parts)

    # -------------------------------------------------------------------------
    # Product scoring
    # -------------------------------------------------------------------------

    def _score_product(
        self,
        product: ProductCandidate,
        analysis: Analysis,
        keywords: list[str],
        interests: list[CategoryInterest],
        viewed_categories: list[str],
        snapshot: BehaviorSnapshot,
    ) -> ProductRecommendation:
        nlp_score, nlp_reasons = self._calculate_nlp_score(product, analysis, keywords)
        behavior_score, behavior_reasons = self._calculate_behavior_score(
            product, interests, viewed_categories
        )

        affinity = self.behavior_store.product_affinity(product.id, snapshot=snapshot)
        reasons = nlp_reasons + behavior_reasons
        if affinity > AFFINITY_REASON_THRESHOLD:
            reasons.append("Has mostrado interés en este producto anteriormente")

        score = nlp_score + behavior_score + affinity * AFFINITY_SCORE_WEIGHT
        return ProductRecommendation(
            product=product,
            score=score,
            reasons=reasons,
            confidence=min(score / CONFIDENCE_DIVISOR, 1.0),
        )

    def _calculate_nlp_score(
        self, product: ProductCandidate, analysis: Analysis, keywords: list[str]
    ) -> tuple[float, list[str]]:
        score = 0.0
        reasons: list[str] = []

        category = canonical_category(product.category)
        if category and category in analysis.categories:
            score += CATEGORY_MATCH_SCORE
            reasons.append(f'Coincide con la categoría "{category}"')

        name = normalize_text(product.name)
        description = normalize_text(product.description)
        matched = [kw for kw in keywords if kw in name or kw in description]
        if matched:
            score += len(matched) * KEYWORD_MATCH_SCORE
            reasons.append(f"Coincide con palabras clave: {', '.join(matched)}")

        if analysis.sale_type is not None and analysis.sale_type == product.sale_type:
            score += SALE_TYPE_MATCH_SCORE
            reasons.append(f"Tipo de venta coincide: {analysis.sale_type.value}")

        if analysis.urgency > URGENCY_THRESHOLD and product.sale_type == SaleType.DIRECTA:
            score += analysis.urgency
            reasons.append("Disponible para compra inmediata")

        return score, reasons

    def _calculate_behavior_score(
        self,
        product: ProductCandidate,
        interests: list[CategoryInterest],
        viewed_categories: list[str],
    ) -> tuple[float, list[str]]:
        score = 0.0
        reasons: list[str] = []

        category = canonical_category(product.category)
        if not category:
            return score, reasons

        interest_score = sum(
            i.score for i in interests if canonical_category(i.category) == category
        )
        if interest_score > 0:
            score += min(interest_score / INTEREST_SCORE_DIVISOR, 1.0)
            reasons.append(f'Te interesa la categoría "{category}"')

        similar_viewed = sum(1 for viewed in viewed_categories if viewed == category)
        if similar_viewed:
            score += min(similar_viewed * SIMILAR_VIEWED_STEP, 1.0)
            reasons.append("Has visto productos similares recientemente")

        return score, reasons

    # -------------------------------------------------------------------------
    # Store scoring
    # -------------------------------------------------------------------------

    def _score_store(
        self,
        store: StoreCandidate,
        analysis: Analysis,
        interests: list[CategoryInterest],
    ) -> StoreRecommendation:
        score = 0.0
        reasons: list[str] = []
        store_categories = [canonical_category(c) for c in store.categories]

        if any(
            _loose_match(store_category, canonical_category(interest.category))
            for store_category in store_categories
            for interest in interests
        ):
            score += STORE_INTEREST_MATCH_SCORE
            reasons.append("Tienda especializada en tus categorías de interés")

        if any(
            _loose_match(store_category, query_category)
            for store_category in store_categories
            for query_category in analysis.categories
        ):
            score += STORE_QUERY_MATCH_SCORE
            reasons.append("Coincide con lo que estás buscando")

        if store.rating >= STORE_RATING_THRESHOLD:
            score += STORE_RATING_BONUS
            reasons.append("Tienda con excelentes calificaciones")

        return StoreRecommendation(
            store=store,
            score=score,
            reasons=reasons,
            confidence=min(score / CONFIDENCE_DIVISOR, 1.0),
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _build_lookup(
        self, candidates: Sequence[ProductCandidate]
    ) -> Callable[[str], str | None]:
        """Resolve product ids to categories from candidates, then the injected lookup."""
        from_candidates = {c.id: c.category for c in candidates if c.category}

        def lookup(product_id: str) -> str | None:
            if product_id in from_candidates:
                return from_candidates[product_id]
            return resolve_category(self.category_lookup, product_id)

        return lookup


def _loose_match(a: str, b: str) -> bool:
    """Substring match in either direction, ignoring empty names."""
    if not a or not b:
        return False
    return a in b or b in a
