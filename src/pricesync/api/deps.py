from dependency_injector.wiring import Provide, inject
from fastapi import Depends

from pricesync.cache.manager import CacheManager
from pricesync.cache.pairs import PairCache
from pricesync.cache.snapshot import SnapshotCache
from pricesync.config import Settings
from pricesync.container import Container
from pricesync.workers.reconciliation import ReconciliationQueue


@inject
def get_settings(settings: Settings = Depends(Provide[Container.settings])) -> Settings:
    return settings


@inject
def get_snapshot_cache(
    snapshots: SnapshotCache = Depends(Provide[Container.snapshot_cache]),
) -> SnapshotCache:
    return snapshots


@inject
def get_pair_cache(pairs: PairCache = Depends(Provide[Container.pair_cache])) -> PairCache:
    return pairs


@inject
def get_cache_manager(cache: CacheManager = Depends(Provide[Container.cache_manager])) -> CacheManager:
    return cache


@inject
def get_reconciliation_queue(
    queue: ReconciliationQueue = Depends(Provide[Container.reconciliation_queue]),
) -> ReconciliationQueue:
    return queue
