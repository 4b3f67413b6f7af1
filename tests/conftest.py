"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from smart_search.config import Settings
from smart_search.infrastructure.storage import MemoryStorage
from smart_search.models import ProductCandidate, SaleType, StoreCandidate
from smart_search.services.behavior_store import BehaviorStore
from smart_search.services.personalization import PersonalizationService
from smart_search.services.recommendation_scorer import RecommendationScorer
from smart_search.services.text_analyzer import TextAnalyzer


class FakeClock:
    """Deterministic clock for the behavior store."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def test_settings() -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=True,
        storage_backend="memory",
        storage_key_prefix="test-behavior",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def behavior_store(storage: MemoryStorage, test_settings: Settings, clock: FakeClock) -> BehaviorStore:
    return BehaviorStore(storage, client_id="client-1", settings=test_settings, clock=clock)


@pytest.fixture
def detached_store(test_settings: Settings, clock: FakeClock) -> BehaviorStore:
    """Store without any persistence, as during server-side rendering."""
    return BehaviorStore(None, client_id="client-1", settings=test_settings, clock=clock)


@pytest.fixture
def analyzer() -> TextAnalyzer:
    return TextAnalyzer()


@pytest.fixture
def scorer(
    analyzer: TextAnalyzer, behavior_store: BehaviorStore, test_settings: Settings
) -> RecommendationScorer:
    return RecommendationScorer(analyzer, behavior_store, settings=test_settings)


@pytest.fixture
def personalization(
    analyzer: TextAnalyzer, behavior_store: BehaviorStore
) -> PersonalizationService:
    return PersonalizationService(analyzer, behavior_store)


@pytest.fixture
def gaming_phone() -> ProductCandidate:
    return ProductCandidate(
        id="101",
        name="Smartphone Gaming Pro",
        category="technology",
        description="Celular con pantalla de 120Hz ideal para gaming",
        price=850_000,
        sale_type=SaleType.DIRECTA,
    )


@pytest.fixture
def sofa() -> ProductCandidate:
    return ProductCandidate(
        id="202",
        name="Sofá de tres cuerpos",
        category="home",
        description="Tapizado en tela, color gris",
        price=2_500_000,
        sale_type=SaleType.PEDIDO,
    )


@pytest.fixture
def tech_store() -> StoreCandidate:
    return StoreCandidate(
        id="s1",
        name="Tech Asunción",
        description="Celulares y accesorios",
        categories=["Tecnología", "Accesorios"],
        rating=4.8,
    )


@pytest.fixture
def furniture_store() -> StoreCandidate:
    return StoreCandidate(
        id="s2",
        name="Muebles Luque",
        description="Muebles a medida",
        categories=["Hogar"],
        rating=4.1,
    )
