"""Business logic services."""

from smart_search.services.behavior_store import BehaviorStore
from smart_search.services.personalization import (
    PersonalizationService,
    catalog_filters,
    price_fit,
)
from smart_search.services.recommendation_scorer import RecommendationScorer
from smart_search.services.text_analyzer import TextAnalyzer

__all__ = [
    "BehaviorStore",
    "PersonalizationService",
    "RecommendationScorer",
    "TextAnalyzer",
    "catalog_filters",
    "price_fit",
]
