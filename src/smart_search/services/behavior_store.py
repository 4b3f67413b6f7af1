"""Per-client interaction history.

Tracks product/store views, searches, clicks and cart actions, persists the
whole snapshot after every mutation, and derives affinity and interest
signals from it. All operations degrade to no-ops when no storage backend is
attached or the backend fails.
"""

from collections import defaultdict
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from uuid import uuid4

import orjson
import structlog
from pydantic import ValidationError

from shared.constants import (
    AFFINITY_DURATION_WEIGHT,
    AFFINITY_FREQUENCY_WEIGHT,
    AFFINITY_RECENCY_WEIGHT,
    BEHAVIOR_SCHEMA_VERSION,
    DEFAULT_MOST_VIEWED_PRODUCTS,
    DEFAULT_RECENT_SEARCHES,
    DURATION_SATURATION_MS,
    FREQUENCY_SATURATION_VIEWS,
    NO_STORAGE_SESSION_ID,
    RECENCY_BUCKETS,
    RECENCY_FLOOR,
)
from smart_search.config import Settings, get_settings
from smart_search.infrastructure.storage import StorageBackend
from smart_search.models import (
    BehaviorSnapshot,
    BehaviorSummary,
    CartAction,
    CartActionRecord,
    CategoryInterest,
    ClickRecord,
    InteractionMetrics,
    ProductMetricsSummary,
    SearchMetricsSummary,
    SearchRecord,
    StoreMetricsSummary,
    TargetType,
)
from smart_search.services.text_analyzer import canonical_category

logger = structlog.get_logger()

Clock = Callable[[], datetime]
CategoryLookup = Mapping[str, str] | Callable[[str], str | None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BehaviorStore:
    """Interaction history for a single client."""

    def __init__(
        self,
        storage: StorageBackend | None,
        client_id: str = "default",
        settings: Settings | None = None,
        clock: Clock = utc_now,
    ):
        settings = settings or get_settings()
        self.storage = storage
        self.client_id = client_id
        self.clock = clock
        self.search_history_limit = settings.search_history_limit
        self.click_history_limit = settings.click_history_limit
        self.cart_history_limit = settings.cart_history_limit
        self.storage_key = f"{settings.storage_key_prefix}:{client_id}:behavior"
        self.session_key = f"{settings.storage_key_prefix}:{client_id}:session"

    # -------------------------------------------------------------------------
    # Tracking
    # -------------------------------------------------------------------------

    def track_product_view(
        self, product_id: str | int, duration_ms: float = 0, category: str | None = None
    ) -> None:
        """Record a product view, optionally tagging the product's category."""
        if self.storage is None:
            return
        snapshot = self.read()
        self._record_view(snapshot.product_views, str(product_id), duration_ms, category)
        self._save(snapshot)

    def track_store_view(self, store_id: str | int, duration_ms: float = 0) -> None:
        if self.storage is None:
            return
        snapshot = self.read()
        self._record_view(snapshot.store_views, str(store_id), duration_ms, None)
        self._save(snapshot)

    def track_search(self, query: str, results_count: int = 0) -> None:
        if self.storage is None:
            return
        snapshot = self.read()
        snapshot.searches.append(
            SearchRecord(
                query=query, timestamp=self.clock(), results_count=int(max(results_count, 0))
            )
        )
        snapshot.searches = _keep_last(snapshot.searches, self.search_history_limit)
        self._save(snapshot)

    def track_product_click(self, product_id: str | int, context: str) -> None:
        self._track_click(TargetType.PRODUCT, str(product_id), context)

    def track_store_click(self, store_id: str | int, context: str) -> None:
        self._track_click(TargetType.STORE, str(store_id), context)

    def track_add_to_cart(self, product_id: str | int) -> None:
        self._track_cart_action(CartAction.ADD, str(product_id))

    def track_remove_from_cart(self, product_id: str | int) -> None:
        self._track_cart_action(CartAction.REMOVE, str(product_id))

    # -------------------------------------------------------------------------
    # Snapshot access
    # -------------------------------------------------------------------------

    def read(self) -> BehaviorSnapshot:
        """
        Load the persisted snapshot.

        Returns:
            The stored snapshot, or an empty one when nothing is stored, the
            backend is missing or failing, or the stored data cannot be used.
        """
        if self.storage is None:
            return BehaviorSnapshot()

        try:
            raw = self.storage.get(self.storage_key)
        except Exception as e:
            logger.warning("Error loading behavior data", key=self.storage_key, error=str(e))
            return BehaviorSnapshot()

        if not raw:
            return BehaviorSnapshot()

        try:
            payload = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.warning("Corrupt behavior data discarded", key=self.storage_key, error=str(e))
            return BehaviorSnapshot()

        if not isinstance(payload, dict) or payload.get("schema_version") != BEHAVIOR_SCHEMA_VERSION:
            logger.warning(
                "Unsupported behavior data version discarded",
                key=self.storage_key,
                version=payload.get("schema_version") if isinstance(payload, dict) else None,
            )
            return BehaviorSnapshot()

        try:
            return BehaviorSnapshot.model_validate(payload)
        except ValidationError as e:
            logger.warning("Invalid behavior data discarded", key=self.storage_key, error=str(e))
            return BehaviorSnapshot()

    def clear_all(self) -> None:
        if self.storage is None:
            return
        try:
            self.storage.delete(self.storage_key)
        except Exception as e:
            logger.warning("Error clearing behavior data", key=self.storage_key, error=str(e))

    def clear_searches(self) -> None:
        if self.storage is None:
            return
        snapshot = self.read()
        snapshot.searches = []
        self._save(snapshot)

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    def most_viewed(
        self,
        kind: TargetType | str = TargetType.PRODUCT,
        limit: int = DEFAULT_MOST_VIEWED_PRODUCTS,
        snapshot: BehaviorSnapshot | None = None,
    ) -> list[tuple[str, InteractionMetrics]]:
        """Ids with their metrics, most viewed first."""
        if snapshot is None:
            snapshot = self.read()
        views = (
            snapshot.product_views
            if TargetType(kind) == TargetType.PRODUCT
            else snapshot.store_views
        )
        ranked = sorted(views.items(), key=lambda item: item[1].view_count, reverse=True)
        return ranked[:limit]

    def recent_searches(
        self,
        limit: int = DEFAULT_RECENT_SEARCHES,
        snapshot: BehaviorSnapshot | None = None,
    ) -> list[SearchRecord]:
        if snapshot is None:
            snapshot = self.read()
        ordered = sorted(snapshot.searches, key=lambda s: s.timestamp, reverse=True)
        return ordered[:limit]

    def interest_categories(
        self,
        category_lookup: CategoryLookup | None = None,
        snapshot: BehaviorSnapshot | None = None,
    ) -> list[CategoryInterest]:
        """
        Fold product view counts into per-category interest scores.

        Args:
            category_lookup: Product id to category, as a mapping or callable.
                Ids it cannot resolve fall back to the category recorded
                when the view was tracked.
            snapshot: Pre-read snapshot, to avoid another storage read

        Returns:
            Canonical category names sorted by accumulated views, highest first
        """
        if snapshot is None:
            snapshot = self.read()
        scores: dict[str, float] = defaultdict(float)

        for product_id, metrics in snapshot.product_views.items():
            category = resolve_category(category_lookup, product_id) or metrics.category
            if category:
                scores[canonical_category(category)] += metrics.view_count

        return [
            CategoryInterest(category=category, score=score)
            for category, score in sorted(scores.items(), key=lambda x: x[1], reverse=True)
        ]

    def product_affinity(
        self, product_id: str | int, snapshot: BehaviorSnapshot | None = None
    ) -> float:
        """Recency, frequency and attention weighted interest in a product, 0..1."""
        if snapshot is None:
            snapshot = self.read()
        metrics = snapshot.product_views.get(str(product_id))
        if metrics is None:
            return 0.0

        recency = self._calculate_recency_score(metrics.last_viewed)
        frequency = min(metrics.view_count / FREQUENCY_SATURATION_VIEWS, 1.0)
        duration = min(metrics.total_duration / DURATION_SATURATION_MS, 1.0)

        return (
            recency * AFFINITY_RECENCY_WEIGHT
            + frequency * AFFINITY_FREQUENCY_WEIGHT
            + duration * AFFINITY_DURATION_WEIGHT
        )

    def session_id(self) -> str:
        """Opaque per-client id used to key exported summaries."""
        if self.storage is None:
            return NO_STORAGE_SESSION_ID

        generated = f"{int(self.clock().timestamp() * 1000)}-{uuid4().hex[:8]}"
        try:
            stored = self.storage.get(self.session_key)
            if stored:
                return stored.decode("utf-8")
            self.storage.set(self.session_key, generated.encode("utf-8"))
        except Exception as e:
            logger.warning("Error persisting session id", key=self.session_key, error=str(e))
        return generated

    def aggregated_summary(self) -> BehaviorSummary:
        """Daily rollup of views, cart adds, clicks and search terms."""
        snapshot = self.read()

        clicks_by_product: dict[str, int] = defaultdict(int)
        for click in snapshot.clicks:
            if click.target_type == TargetType.PRODUCT:
                clicks_by_product[click.target_id] += 1

        adds_by_product: dict[str, int] = defaultdict(int)
        for action in snapshot.cart_actions:
            if action.action == CartAction.ADD:
                adds_by_product[action.product_id] += 1

        product_metrics = [
            ProductMetricsSummary(
                product_id=product_id,
                views_count=metrics.view_count,
                total_duration_ms=metrics.total_duration,
                avg_duration_ms=_average_duration(metrics),
                add_to_cart_count=adds_by_product[product_id],
                clicks_count=clicks_by_product[product_id],
            )
            for product_id, metrics in snapshot.product_views.items()
        ]

        store_metrics = [
            StoreMetricsSummary(
                store_id=store_id,
                views_count=metrics.view_count,
                total_duration_ms=metrics.total_duration,
                avg_duration_ms=_average_duration(metrics),
            )
            for store_id, metrics in snapshot.store_views.items()
        ]

        term_counts: dict[str, int] = {}
        for search in snapshot.searches:
            term = search.query.strip().lower()
            term_counts[term] = term_counts.get(term, 0) + 1

        return BehaviorSummary(
            session_id=self.session_id(),
            date=self.clock().date().isoformat(),
            product_metrics=product_metrics,
            store_metrics=store_metrics,
            search_metrics=[
                SearchMetricsSummary(term=term, search_count=count)
                for term, count in term_counts.items()
            ],
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _track_click(self, target_type: TargetType, target_id: str, context: str) -> None:
        if self.storage is None:
            return
        snapshot = self.read()
        snapshot.clicks.append(
            ClickRecord(
                target_type=target_type,
                target_id=target_id,
                context=context,
                timestamp=self.clock(),
            )
        )
        snapshot.clicks = _keep_last(snapshot.clicks, self.click_history_limit)
        self._save(snapshot)

    def _track_cart_action(self, action: CartAction, product_id: str) -> None:
        if self.storage is None:
            return
        snapshot = self.read()
        snapshot.cart_actions.append(
            CartActionRecord(action=action, product_id=product_id, timestamp=self.clock())
        )
        snapshot.cart_actions = _keep_last(snapshot.cart_actions, self.cart_history_limit)
        self._save(snapshot)

    def _record_view(
        self,
        views: dict[str, InteractionMetrics],
        target_id: str,
        duration_ms: float,
        category: str | None,
    ) -> None:
        now = self.clock()
        metrics = views.get(target_id)
        if metrics is None:
            metrics = InteractionMetrics(first_viewed=now, last_viewed=now)
            views[target_id] = metrics

        metrics.view_count += 1
        metrics.total_duration += int(max(duration_ms, 0))
        metrics.last_viewed = now
        if category:
            metrics.category = category

    def _calculate_recency_score(self, last_viewed: datetime) -> float:
        if last_viewed.tzinfo is None:
            last_viewed = last_viewed.replace(tzinfo=timezone.utc)
        days_since = (self.clock() - last_viewed).total_seconds() / 86400
        for max_days, score in RECENCY_BUCKETS:
            if days_since <= max_days:
                return score
        return RECENCY_FLOOR

    def _save(self, snapshot: BehaviorSnapshot) -> None:
        if self.storage is None:
            return
        try:
            self.storage.set(self.storage_key, orjson.dumps(snapshot.model_dump(mode="json")))
        except Exception as e:
            logger.warning("Error saving behavior data", key=self.storage_key, error=str(e))


def _keep_last(records: list, limit: int) -> list:
    if len(records) > limit:
        return records[-limit:]
    return records


def _average_duration(metrics: InteractionMetrics) -> int:
    if metrics.view_count <= 0:
        return 0
    return int(metrics.total_duration / metrics.view_count + 0.5)


def resolve_category(lookup: CategoryLookup | None, product_id: str) -> str | None:
    if lookup is None:
        return None
    if isinstance(lookup, Mapping):
        return lookup.get(product_id)
    return lookup(product_id)
