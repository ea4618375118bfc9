# backend/app/services/__init__.py
from .progress_store import ProgressStore
from .cache_storage import CacheStorage, CacheGeneration, GenerationKind
from .cache_worker import CacheWorker, WorkerState
from .worker_container import ServiceWorkerContainer
from .offline_controller import OfflineCacheController
