"""
Explicitly constructed service clients for one process.

The CLI and the worker build a Services instance at startup, pass it to
whatever needs it, and close it on shutdown.
"""

from functools import cached_property

import httpx
from celery import Celery
from openai import OpenAI

from .cache.store import Cache, create_redis_client
from .config.loader import Settings
from .core.pricing import PricingResolver
from .jobs.monitor import QueueMonitor
from .jobs.tracking import JobTracker
from .jobs.worker import create_celery_app, register_queue_tasks
from .sdk.openrouter_client import OpenRouterClient
from .sdk.usage_logger import UsageLogger
from .storage.repository import initialize_schema


class Services:
    """Clients shared by every request handled in this process."""

    def __init__(
        self,
        settings: Settings,
        cache: Cache,
        pricing_resolver: PricingResolver,
        usage_logger: UsageLogger,
        celery_app: Celery
    ):
        self.settings = settings
        self.cache = cache
        self.pricing_resolver = pricing_resolver
        self.usage_logger = usage_logger
        self.celery_app = celery_app

    @cached_property
    def openrouter(self) -> OpenRouterClient:
        """Completion client, built on first use.

        Raises:
            ValueError: If no OpenRouter API key is configured
        """
        config = self.settings.openrouter
        if not config.api_key:
            raise ValueError("OPENROUTER_API_KEY is not configured")
        return OpenRouterClient(
            OpenAI(api_key=config.api_key, base_url=config.base_url, max_retries=0),
            self.pricing_resolver,
            self.usage_logger,
            default_model=config.default_model
        )

    @cached_property
    def queue_monitor(self) -> QueueMonitor:
        return QueueMonitor(self.celery_app, self.cache)

    @cached_property
    def job_tracker(self) -> JobTracker:
        return JobTracker(self.cache)

    def close(self) -> None:
        if "openrouter" in self.__dict__:
            self.openrouter.client.close()
        self.pricing_resolver.close()
        self.cache.close()


def build_services(settings: Settings) -> Services:
    """Construct the process's clients from settings and ensure the schema exists."""
    initialize_schema(settings.storage.db_path)

    cache = Cache(create_redis_client(settings.redis.url))
    pricing_resolver = PricingResolver(
        cache,
        settings.openrouter.catalog_url,
        http_client=httpx.Client(timeout=30.0),
        ttl=settings.pricing.cache_ttl_seconds
    )

    celery_app = create_celery_app(settings.redis.url)
    register_queue_tasks(celery_app, cache)

    return Services(
        settings=settings,
        cache=cache,
        pricing_resolver=pricing_resolver,
        usage_logger=UsageLogger(settings.storage.db_path),
        celery_app=celery_app
    )
