"""Client-side offline resilience for DroneGarden field clients."""

from .api_client import ApiClient, ApiError
from .cache import CacheKeys, PersistentCache
from .geocoding import Coordinates, GeocodingBatcher, NominatimGeocoder
from .network import NetworkEvent, NetworkStatus, NetworkStatusMonitor, ReconnectBanner, Subscription
from .notifications import (
    CompleteServiceParams,
    ConfirmServiceParams,
    NotificationDispatcher,
    NotificationOutcome,
    NotificationResult,
)
from .service_worker import CacheStorage, RequestCache, ServiceWorker, Strategy
from .storage import JsonFileStorage, MemoryStorage, StorageQuotaExceeded

__all__ = [
    "ApiClient",
    "ApiError",
    "CacheKeys",
    "CacheStorage",
    "CompleteServiceParams",
    "ConfirmServiceParams",
    "Coordinates",
    "GeocodingBatcher",
    "JsonFileStorage",
    "MemoryStorage",
    "NetworkEvent",
    "NetworkStatus",
    "NetworkStatusMonitor",
    "NominatimGeocoder",
    "NotificationDispatcher",
    "NotificationOutcome",
    "NotificationResult",
    "PersistentCache",
    "ReconnectBanner",
    "RequestCache",
    "ServiceWorker",
    "StorageQuotaExceeded",
    "Strategy",
    "Subscription",
]
