# rediver/clients/client_rest.py
"""
REST Client
-----------
Thin requests-based client for the Rediver backend (/api/v1/...).
 - Bearer token + optional tenant header
 - Unwraps {"success": ..., "data": ...} envelopes
 - Normalizes every failure into ApiClientError
 - Caches GET responses until a write invalidates them
"""

import json
import time
from typing import Any, Dict, Iterable, Optional, Tuple

import requests

import rediver.core.logger as logger
from rediver.core.config import ClientConfig


class ApiClientError(Exception):
    """Any failed API call: HTTP error, timeout, network error or malformed body."""

    def __init__(self, message: str, code: str = "UNKNOWN_ERROR", status_code: int = 500, details: Any = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


def get_error_message(exc: BaseException, fallback: str = "An unexpected error occurred") -> str:
    """Best user-facing message for an exception, preferring the server's own wording."""
    if isinstance(exc, ApiClientError):
        if exc.message and len(exc.message) < 200 and "Error:" not in exc.message:
            return exc.message
        details = exc.details if isinstance(exc.details, dict) else {}
        errors = details.get("errors")
        if isinstance(errors, list) and errors:
            return ". ".join(str(e.get("message", "")) for e in errors if isinstance(e, dict))
        if details.get("message"):
            return str(details["message"])
        return exc.message or fallback
    return str(exc) or fallback


def _parse_error_response(response: requests.Response) -> ApiClientError:
    content_type = response.headers.get("content-type", "")
    reason = response.reason or "Unknown error"
    if "application/json" in content_type:
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            err = data.get("error")
            if isinstance(err, dict):
                return ApiClientError(
                    err.get("message") or reason,
                    err.get("code") or "UNKNOWN_ERROR",
                    response.status_code,
                    err.get("details"),
                )
            if data.get("message"):
                return ApiClientError(
                    data["message"],
                    data.get("code") or err or "UNKNOWN_ERROR",
                    response.status_code,
                    data.get("details"),
                )
        return ApiClientError(reason, "UNKNOWN_ERROR", response.status_code, data)
    return ApiClientError(reason, f"HTTP_{response.status_code}", response.status_code)


def _is_envelope(data: Any) -> bool:
    return isinstance(data, dict) and "success" in data and ("data" in data or "error" in data)


class RestClient:
    """Client for the Rediver REST API."""

    def __init__(self, config: ClientConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()
        self._cache: Dict[Tuple[str, str], Any] = {}

    # ---------------------- CACHE ---------------------- #

    @staticmethod
    def _cache_key(path: str, params: Optional[Dict[str, Any]]) -> Tuple[str, str]:
        clean = {k: v for k, v in (params or {}).items() if v is not None}
        return path, json.dumps(clean, sort_keys=True, default=str)

    def invalidate(self, prefixes: Iterable[str]) -> int:
        """Drop cached reads whose path contains any of the given prefixes. Returns the count dropped."""
        prefixes = tuple(prefixes)
        stale = [key for key in self._cache if any(p in key[0] for p in prefixes)]
        for key in stale:
            del self._cache[key]
        if stale:
            logger.log(f"Invalidated {len(stale)} cached response(s)", verbose_only=True)
        return len(stale)

    def cached_paths(self):
        return [key[0] for key in self._cache]

    # ---------------------- REQUESTS ---------------------- #

    def _headers(self) -> Dict[str, str]:
        if not self.config.api_token:
            raise EnvironmentError("⚠️ Missing REDIVER_API_TOKEN in environment or .env file")
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.config.api_token}",
        }
        if self.config.tenant_id:
            headers["X-Tenant-ID"] = self.config.tenant_id
        return headers

    def _send(self, method: str, path: str, params=None, payload=None) -> requests.Response:
        url = f"{self.config.api_url}{path}"
        logger.log(f"{method} {url}", verbose_only=True)
        if logger.VERBOSE and params:
            logger.log(f"Query params: {params}", verbose_only=True)
        if logger.VERBOSE and payload is not None:
            logger.log(f"Request body: {json.dumps(payload, default=str)}", verbose_only=True)
        try:
            return self.session.request(
                method,
                url,
                params={k: v for k, v in (params or {}).items() if v is not None} or None,
                json=payload,
                headers=self._headers(),
                timeout=self.config.timeout,
            )
        except requests.exceptions.Timeout as exc:
            raise ApiClientError("Request timeout", "TIMEOUT", 408, {"timeout": self.config.timeout, "url": url}) from exc
        except requests.exceptions.ConnectionError as exc:
            raise ApiClientError(
                "Network error - please check your connection", "NETWORK_ERROR", 0, {"originalError": str(exc)}
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise ApiClientError(str(exc) or "An unexpected error occurred", "UNKNOWN_ERROR", 500) from exc

    def _decode(self, response: requests.Response) -> Any:
        if not response.ok:
            err = _parse_error_response(response)
            if logger.VERBOSE:
                logger.log(f"API error payload: {err.code} {err.message} {err.details}", style="red", verbose_only=True)
            raise err
        if response.status_code == 204 or not (response.text or "").strip():
            return None
        try:
            data = response.json()
        except ValueError as exc:
            raise ApiClientError(
                "Invalid JSON response from server",
                "PARSE_ERROR",
                response.status_code,
                {"responseText": response.text[:500]},
            ) from exc
        if _is_envelope(data):
            if not data.get("success"):
                err = data.get("error") or {}
                raise ApiClientError(
                    err.get("message") or "API request failed",
                    err.get("code") or "UNKNOWN_ERROR",
                    response.status_code,
                    err.get("details"),
                )
            return data.get("data")
        return data

    def request(self, method: str, path: str, params=None, payload=None, retry: bool = False) -> Any:
        attempts = (self.config.retries if retry else 0) + 1
        for attempt in range(attempts):
            try:
                return self._decode(self._send(method, path, params, payload))
            except ApiClientError as exc:
                if exc.code not in ("TIMEOUT", "NETWORK_ERROR") or attempt >= attempts - 1:
                    raise
                backoff = 0.5 * (2 ** attempt)
                logger.log(f"{exc.message}; retrying in {backoff:.1f}s", style="yellow", verbose_only=True)
                time.sleep(backoff)
        raise ApiClientError("Request failed")

    def get(self, path: str, params: Optional[Dict[str, Any]] = None, use_cache: bool = True, retry: bool = True) -> Any:
        key = self._cache_key(path, params)
        if use_cache and key in self._cache:
            logger.log(f"Cache hit: {path}", verbose_only=True)
            return self._cache[key]
        data = self.request("GET", path, params=params, retry=retry)
        self._cache[key] = data
        return data

    def post(self, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("POST", path, payload=payload if payload is not None else {})

    def put(self, path: str, payload: Dict[str, Any]) -> Any:
        return self.request("PUT", path, payload=payload)

    def delete(self, path: str) -> Any:
        return self.request("DELETE", path)


def build_client() -> RestClient:
    """Client configured from the environment / .env."""
    return RestClient(ClientConfig.from_env())
