"""Composition root for the smart search core.

The hosting application builds one SearchEngine per client and keeps it for
the client's lifetime; every service shares the engine's BehaviorStore.
"""

from dataclasses import dataclass

import structlog

from smart_search.config import Settings, get_settings
from smart_search.infrastructure.storage import StorageBackend, create_storage
from smart_search.services.behavior_store import BehaviorStore, CategoryLookup
from smart_search.services.personalization import PersonalizationService
from smart_search.services.recommendation_scorer import RecommendationScorer
from smart_search.services.text_analyzer import TextAnalyzer

_logging_configured = False


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog once per process."""
    global _logging_configured
    if _logging_configured:
        return
    settings = settings or get_settings()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(settings.log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logging_configured = True


@dataclass
class SearchEngine:
    """Services wired around a single client's behavior store."""

    analyzer: TextAnalyzer
    behavior_store: BehaviorStore
    scorer: RecommendationScorer
    personalization: PersonalizationService


def create_search_engine(
    client_id: str = "default",
    settings: Settings | None = None,
    storage: StorageBackend | None = None,
    category_lookup: CategoryLookup | None = None,
) -> SearchEngine:
    """
    Build the services for one client.

    Args:
        client_id: Opaque id scoping the persisted behavior
        settings: Overrides the cached environment settings
        storage: Overrides the backend selected by settings
        category_lookup: Catalog product id to category resolver

    Returns:
        SearchEngine sharing one BehaviorStore across its services
    """
    settings = settings or get_settings()
    configure_logging(settings)

    if storage is None:
        storage = create_storage(settings)

    analyzer = TextAnalyzer()
    behavior_store = BehaviorStore(storage, client_id=client_id, settings=settings)
    engine = SearchEngine(
        analyzer=analyzer,
        behavior_store=behavior_store,
        scorer=RecommendationScorer(
            analyzer, behavior_store, category_lookup=category_lookup, settings=settings
        ),
        personalization=PersonalizationService(analyzer, behavior_store),
    )

    structlog.get_logger().info(
        "Search engine ready",
        app_env=settings.app_env,
        client_id=client_id,
        storage=type(storage).__name__ if storage is not None else None,
    )
    return engine
