"""Async client for the DroneGarden REST API with offline cache fallback.

Read endpoints that have a cache key follow one policy:

1. try the network with the current bearer token;
2. on success, store the full response under the cache key and return it;
3. on failure while the network monitor reports offline, return the
   cached copy if there is one;
4. otherwise propagate the error. HTTP error statuses never consult the
   cache, so a failing backend is not disguised as stale success.

Every failure reaches callers as `ApiError`.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .cache import CacheKeys, PersistentCache
from .network import NetworkStatusMonitor
from .storage import KeyValueStorage, MemoryStorage

logger = logging.getLogger("dronegarden.offline.api")

TOKEN_KEY = "auth_token"
DEFAULT_BASE_URL = "http://localhost:8000/api"
GENERIC_ERROR = "Request failed"
CONNECTIVITY_ERROR = "Network error: the server could not be reached"


class ApiError(Exception):
    """The single failure type of the API client.

    `status_code` is None when no response was received at all.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_connectivity_error(self) -> bool:
        return self.status_code is None


def _error_message(body: Any) -> str:
    if isinstance(body, dict):
        for field in ("error", "detail", "message"):
            if isinstance(body.get(field), str) and body[field]:
                return body[field]
    return GENERIC_ERROR


class ApiClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        storage: Optional[KeyValueStorage] = None,
        cache: Optional[PersistentCache] = None,
        monitor: Optional[NetworkStatusMonitor] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 15.0,
    ):
        self.storage = storage if storage is not None else MemoryStorage()
        self.cache = cache if cache is not None else PersistentCache(self.storage)
        self.monitor = monitor if monitor is not None else NetworkStatusMonitor()
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # -- token -----------------------------------------------------------

    def get_token(self) -> Optional[str]:
        return self.storage.get_item(TOKEN_KEY)

    def set_token(self, token: str) -> None:
        self.storage.set_item(TOKEN_KEY, token)

    def remove_token(self) -> None:
        self.storage.remove_item(TOKEN_KEY)

    def has_token(self) -> bool:
        return bool(self.get_token())

    # -- transport -------------------------------------------------------

    async def send(self, method: str, path: str, json: Any = None) -> httpx.Response:
        """Issue a request with the auth header attached and return the raw response.

        Transport failures mark the monitor offline and are re-raised as
        `httpx.TransportError`; any response marks it online.
        """
        headers = {"Accept": "application/json"}
        token = self.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            response = await self._http.request(method, path, json=json, headers=headers)
        except httpx.TransportError:
            self.monitor.handle_offline()
            raise
        if not self.monitor.is_online:
            self.monitor.handle_online()
        return response

    async def request(self, method: str, path: str, json: Any = None) -> Any:
        """Send a request and return the decoded JSON body, raising `ApiError` on failure."""
        try:
            response = await self.send(method, path, json=json)
        except httpx.TransportError as exc:
            logger.info("%s %s unreachable: %s", method, path, exc)
            raise ApiError(CONNECTIVITY_ERROR) from exc
        try:
            body = response.json()
        except ValueError:
            body = None
        if not response.is_success:
            raise ApiError(_error_message(body), response.status_code)
        return body

    async def cached_get(self, path: str, cache_key: str) -> Any:
        try:
            data = await self.request("GET", path)
        except ApiError:
            if not self.monitor.is_online:
                cached = self.cache.get(cache_key)
                if cached is not None:
                    logger.info("serving %s from offline cache", path)
                    return cached
            raise
        self.cache.set(cache_key, data)
        return data

    # -- auth ------------------------------------------------------------

    async def _store_session(self, data: dict) -> dict:
        self.set_token(data["token"])
        self.cache.set(CacheKeys.USER, {"user": data["user"]})
        return data

    async def register(self, email: str, password: str, name: Optional[str] = None) -> dict:
        data = await self.request("POST", "/auth/register", {"email": email, "password": password, "name": name})
        return await self._store_session(data)

    async def login(self, email: str, password: str) -> dict:
        data = await self.request("POST", "/auth/login", {"email": email, "password": password})
        return await self._store_session(data)

    async def logout(self) -> None:
        """Tell the backend, then always drop the token and cached data."""
        try:
            await self.request("POST", "/auth/logout")
        except ApiError as exc:
            logger.info("logout request failed: %s", exc)
        finally:
            self.remove_token()
            self.cache.clear()

    async def get_current_user(self) -> Optional[dict]:
        """Return the signed-in user, or None without a (valid) session."""
        if not self.has_token():
            return None
        try:
            data = await self.cached_get("/auth/me", CacheKeys.USER)
        except ApiError as exc:
            if exc.status_code == 401:
                self.remove_token()
                self.cache.remove(CacheKeys.USER)
                return None
            raise
        return data.get("user") if isinstance(data, dict) else None

    async def change_password(self, current_password: str, new_password: str) -> dict:
        return await self.request("POST", "/auth/change-password", {"currentPassword": current_password, "newPassword": new_password})

    async def forgot_password(self, email: str) -> dict:
        return await self.request("POST", "/auth/forgot-password", {"email": email})

    async def reset_password(self, token: str, new_password: str) -> dict:
        return await self.request("POST", "/auth/reset-password", {"token": token, "newPassword": new_password})

    # -- profile ---------------------------------------------------------

    async def get_profile(self) -> dict:
        return await self.request("GET", "/profile")

    async def update_profile(self, **fields: Any) -> dict:
        return await self.request("PUT", "/profile", fields)

    # -- service requests ------------------------------------------------

    async def create_service_request(self, data: dict) -> dict:
        return await self.request("POST", "/service-requests", data)

    async def get_my_requests(self) -> list:
        return await self.cached_get("/service-requests", CacheKeys.SERVICE_REQUESTS)

    async def get_all_requests(self) -> list:
        return await self.cached_get("/admin/service-requests", CacheKeys.ALL_SERVICE_REQUESTS)

    async def update_request_status(self, request_id: int, status: str) -> dict:
        return await self.request("PUT", f"/admin/service-requests/{request_id}/status", {"status": status})

    async def delete_service_request(self, request_id: int) -> dict:
        return await self.request("DELETE", f"/admin/service-requests/{request_id}")

    # -- admin users -----------------------------------------------------

    async def list_users(self) -> list:
        return await self.cached_get("/admin/users", CacheKeys.USERS)

    async def create_user(self, email: str, password: str, name: Optional[str] = None) -> dict:
        return await self.request("POST", "/admin/users", {"email": email, "password": password, "name": name})

    async def delete_user(self, user_id: int) -> dict:
        return await self.request("DELETE", f"/admin/users/{user_id}")

    async def change_user_password(self, user_id: int, new_password: str) -> dict:
        return await self.request("PUT", f"/admin/users/{user_id}/password", {"newPassword": new_password})

    async def send_password_reset(self, user_id: int) -> dict:
        return await self.request("POST", f"/admin/users/{user_id}/send-reset")

    # -- provider config -------------------------------------------------

    async def get_config(self) -> dict:
        return await self.request("GET", "/config")

    async def save_vonage_config(self, api_key: str, api_secret: str, from_number: Optional[str] = None) -> dict:
        return await self.request("POST", "/config/vonage", {"apiKey": api_key, "apiSecret": api_secret, "fromNumber": from_number})

    async def save_smtp_config(self, user: str, password: str, host: Optional[str] = None,
                               port: Optional[int] = None, from_email: Optional[str] = None) -> dict:
        body = {"host": host, "port": port, "user": user, "pass": password, "fromEmail": from_email}
        return await self.request("POST", "/config/smtp", body)

    async def test_vonage(self) -> dict:
        return await self.request("POST", "/config/test-vonage")

    async def test_smtp(self) -> dict:
        return await self.request("POST", "/config/test-smtp")

    async def send_sms(self, to: str, message: str) -> dict:
        return await self.request("POST", "/sms/send", {"to": to, "message": message})

    async def health(self) -> dict:
        return await self.request("GET", "/health")
