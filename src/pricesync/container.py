from dependency_injector import containers, providers

from pricesync.cache.manager import CacheManager
from pricesync.cache.pairs import PairCache
from pricesync.cache.snapshot import SnapshotCache
from pricesync.config import Settings
from pricesync.infra.http.throttled_transport import ThrottledTransport
from pricesync.infra.price.coingecko import CoinGeckoClient
from pricesync.workers.reconciliation import ReconciliationQueue
from pricesync.workers.scheduler import BackgroundScheduler


class Container(containers.DeclarativeContainer):
    wiring_config = containers.WiringConfiguration(modules=["pricesync.api.deps"])

    settings = providers.Singleton(Settings)

    transport = providers.Singleton(
        ThrottledTransport,
        min_interval=settings.provided.throttle_interval,
    )

    coingecko = providers.Singleton(
        CoinGeckoClient,
        transport=transport,
        base_url=settings.provided.coingecko_base_url,
        api_key=settings.provided.coingecko_api_key,
        vs_currency=settings.provided.vs_currency,
        max_attempts=settings.provided.retry_attempts,
        snapshot_timeout=settings.provided.snapshot_timeout,
        series_timeout=settings.provided.series_timeout,
    )

    cache_manager = providers.Singleton(CacheManager)

    reconciliation_queue = providers.Singleton(
        ReconciliationQueue,
        cache=cache_manager,
        client=coingecko,
        max_attempts=settings.provided.reconcile_max_attempts,
    )

    snapshot_cache = providers.Singleton(
        SnapshotCache,
        cache=cache_manager,
        client=coingecko,
        ttl=settings.provided.snapshot_ttl,
    )

    pair_cache = providers.Singleton(
        PairCache,
        cache=cache_manager,
        client=coingecko,
        queue=reconciliation_queue,
        ttl=settings.provided.pair_ttl,
    )

    scheduler = providers.Singleton(
        BackgroundScheduler,
        settings=settings,
        snapshots=snapshot_cache,
        pairs=pair_cache,
        queue=reconciliation_queue,
    )
