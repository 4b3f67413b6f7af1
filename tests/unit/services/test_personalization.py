"""Unit tests for personalization signals."""

import pytest

from smart_search.models import Intent, ProductCandidate
from smart_search.services.behavior_store import BehaviorStore
from smart_search.services.personalization import (
    PersonalizationService,
    catalog_filters,
    price_fit,
)
from smart_search.services.text_analyzer import TextAnalyzer
from tests.conftest import FakeClock


class TestInterestProfile:
    def test_combines_searches_views_and_engagement(
        self,
        personalization: PersonalizationService,
        behavior_store: BehaviorStore,
        clock: FakeClock,
    ) -> None:
        behavior_store.track_search("celular barato")
        clock.advance(minutes=1)
        behavior_store.track_search("zapatillas entre 100 mil y 300 mil")
        behavior_store.track_product_view("101", category="technology")
        behavior_store.track_product_view("101", category="technology")
        behavior_store.track_product_view("202", category="hogar")
        behavior_store.track_product_click("202", "search")

        profile = personalization.interest_profile()

        # technology: search 0.5 + view 1.0; home: view 1.0 + click 0.7
        assert profile.category_scores["technology"] == pytest.approx(1.5)
        assert profile.category_scores["home"] == pytest.approx(1.7)
        assert profile.category_scores["clothing"] == pytest.approx(0.5)
        assert profile.top_categories == ["home", "technology", "clothing"]
        assert profile.price_min == 100_000
        assert profile.price_max == 300_000

    def test_price_from_latest_search_with_range(
        self,
        personalization: PersonalizationService,
        behavior_store: BehaviorStore,
        clock: FakeClock,
    ) -> None:
        behavior_store.track_search("hasta 100 mil")
        clock.advance(minutes=1)
        behavior_store.track_search("celular")

        profile = personalization.interest_profile()

        assert profile.price_min is None
        assert profile.price_max == 100_000

    def test_lookup_overrides_recorded_category(
        self, personalization: PersonalizationService, behavior_store: BehaviorStore
    ) -> None:
        behavior_store.track_product_view("7", category="home")

        profile = personalization.interest_profile({"7": "Juguetes"})

        assert profile.category_scores == {"toys": 1.0}

    def test_cart_actions_reinforce(
        self, personalization: PersonalizationService, behavior_store: BehaviorStore
    ) -> None:
        behavior_store.track_add_to_cart("9")

        profile = personalization.interest_profile({"9": "belleza"})

        assert profile.category_scores == {"beauty": pytest.approx(0.7)}

    def test_empty_history(self, personalization: PersonalizationService) -> None:
        profile = personalization.interest_profile()
        assert profile.category_scores == {}
        assert profile.top_categories == []
        assert profile.price_min is None
        assert profile.price_max is None

    def test_detached_store(self, analyzer: TextAnalyzer, detached_store: BehaviorStore) -> None:
        detached_store.track_search("celular")
        profile = PersonalizationService(analyzer, detached_store).interest_profile()
        assert profile.top_categories == []


class TestStorePreferences:
    @pytest.fixture(autouse=True)
    def _visits(self, behavior_store: BehaviorStore) -> None:
        behavior_store.track_store_view("s1", duration_ms=120_000)
        behavior_store.track_store_view("s1", duration_ms=120_000)
        behavior_store.track_store_view("s2")

    def test_store_affinity_normalized_to_top_store(
        self, personalization: PersonalizationService
    ) -> None:
        affinity = personalization.store_affinity()

        assert affinity["s1"] == pytest.approx(1.0)
        # s1: 2 * 0.7 + 4 min * 0.3; s2: 1 * 0.7
        assert affinity["s2"] == pytest.approx(0.7 / 2.6)

    def test_visited_stores_ranked(self, personalization: PersonalizationService) -> None:
        visited = personalization.visited_stores()

        assert [store_id for store_id, _ in visited] == ["s1", "s2"]
        assert visited[0][1] == pytest.approx(2 * 0.6 + 4 * 0.4)

    def test_visited_stores_limit(self, personalization: PersonalizationService) -> None:
        assert len(personalization.visited_stores(limit=1)) == 1

    def test_attention_minutes_capped(
        self, personalization: PersonalizationService, behavior_store: BehaviorStore
    ) -> None:
        behavior_store.track_store_view("s3", duration_ms=60 * 60_000)

        visited = dict(personalization.visited_stores(limit=10))

        assert visited["s3"] == pytest.approx(0.6 + 10 * 0.4)


class TestSearchSuggestions:
    def test_distinct_newest_first(
        self,
        personalization: PersonalizationService,
        behavior_store: BehaviorStore,
        clock: FakeClock,
    ) -> None:
        for query in ["Celular", "zapatillas", "  ", "celular "]:
            behavior_store.track_search(query)
            clock.advance(minutes=1)

        assert personalization.search_suggestions() == ["celular", "zapatillas"]

    def test_limit(
        self,
        personalization: PersonalizationService,
        behavior_store: BehaviorStore,
        clock: FakeClock,
    ) -> None:
        for i in range(5):
            behavior_store.track_search(f"consulta {i}")
            clock.advance(minutes=1)

        assert personalization.search_suggestions(limit=2) == ["consulta 4", "consulta 3"]


class TestPriceFit:
    @pytest.mark.parametrize(
        ("price", "expected"),
        [
            (150, 1.0),
            (100, 1.0),
            (50, 0.5),
            (300, 0.5),
            (1_000, 0.0),
        ],
    )
    def test_with_range(self, price: float, expected: float) -> None:
        assert price_fit(price, 100, 200) == pytest.approx(expected)

    def test_open_upper_bound(self) -> None:
        assert price_fit(5_000, price_min=1_000) == 1.0

    def test_against_average(self) -> None:
        assert price_fit(90, average_price=100) == pytest.approx(0.9)

    def test_no_preference(self) -> None:
        assert price_fit(90) == 0.0


class TestCatalogFilters:
    def test_price_intent_sorts_by_price(self, analyzer: TextAnalyzer) -> None:
        analysis = analyzer.analyze("celular barato")
        assert analysis.intent == Intent.PRICE

        filters = catalog_filters(analysis, {"Tecnología": 7, "Hogar": 3})

        assert filters == {
            "sort_by": "precio",
            "sort_order": "asc",
            "per_page": 12,
            "categoria": 7,
        }

    def test_newest_first_with_price_bound(self, analyzer: TextAnalyzer) -> None:
        filters = catalog_filters(analyzer.analyze("busco heladera hasta 2 millones"), per_page=24)

        assert filters == {
            "sort_by": "fecha_creacion",
            "sort_order": "desc",
            "per_page": 24,
            "precio_max": 2_000_000,
        }

    def test_unknown_category_omitted(self, analyzer: TextAnalyzer) -> None:
        filters = catalog_filters(analyzer.analyze("pelota"), {"Hogar": 3})
        assert "categoria" not in filters


def _product(product_id: str, category: str, price: float, **overrides) -> ProductCandidate:
    return ProductCandidate(
        id=product_id, name=f"Producto {product_id}", category=category, price=price, **overrides
    )


class TestRankForYou:
    def test_weights_and_skips_viewed(
        self, personalization: PersonalizationService, behavior_store: BehaviorStore
    ) -> None:
        behavior_store.track_product_view("1")
        behavior_store.track_store_view("s1")
        candidates = [
            _product("1", "technology", 100_000),
            _product("3", "hogar", 200_000, store_id="s2"),
            _product("2", "technology", 100_000, discount=20, store_id="s1"),
        ]

        ranked = personalization.rank_for_you(candidates)

        assert [r.product.id for r in ranked] == ["2", "3"]
        # category 1.0 * 0.4 + price 1.0 * 0.3 + discount 0.2 * 0.1 + store 1.0 * 0.2
        assert ranked[0].score == pytest.approx(0.92)
        assert ranked[0].confidence == pytest.approx(0.92)
        assert "20% de descuento" in ranked[0].reasons
        assert "De una tienda que visitaste" in ranked[0].reasons
        assert ranked[1].score == 0.0

    def test_category_relative_to_top_interest(
        self, personalization: PersonalizationService, behavior_store: BehaviorStore
    ) -> None:
        for product_id in ["v1", "v2", "v3"]:
            behavior_store.track_product_view(product_id)
        lookup = {"v1": "hogar", "v2": "hogar", "v3": "deportes"}

        ranked = personalization.rank_for_you(
            [_product("s", "sports", 50_000), _product("h", "home", 50_000)],
            category_lookup=lookup,
        )

        assert [r.product.id for r in ranked] == ["h", "s"]
        assert ranked[0].score == pytest.approx(0.4)
        assert ranked[1].score == pytest.approx(0.2)

    def test_searched_price_range(
        self,
        personalization: PersonalizationService,
        behavior_store: BehaviorStore,
    ) -> None:
        behavior_store.track_search("hasta 150 mil")
        behavior_store.track_product_view("9", category="technology")

        ranked = personalization.rank_for_you(
            [_product("5", "technology", 300_000), _product("4", "technology", 100_000)]
        )

        assert [r.product.id for r in ranked] == ["4", "5"]
        assert ranked[0].score == pytest.approx(0.4 + 0.3)
        assert ranked[1].score == pytest.approx(0.4)

    def test_duplicates_and_limit(self, personalization: PersonalizationService) -> None:
        candidates = [
            _product("1", "home", 10_000, discount=50),
            {"id": 1, "name": "Duplicado", "price": 10_000},
            _product("2", "home", 10_000, discount=10),
        ]

        ranked = personalization.rank_for_you(candidates, limit=5)
        assert [r.product.id for r in ranked] == ["1", "2"]
        assert ranked[0].product.name == "Producto 1"

        assert len(personalization.rank_for_you(candidates, limit=1)) == 1

    def test_no_history_keeps_input_order(
        self, personalization: PersonalizationService
    ) -> None:
        ranked = personalization.rank_for_you(
            [_product("a", "home", 1_000), _product("b", "toys", 2_000)]
        )
        assert [r.product.id for r in ranked] == ["a", "b"]
        assert all(r.score == 0.0 for r in ranked)
