"""HTTP provider adapter: talks JSON to a remote resource API."""

import os
from typing import Any, Dict, Optional, Tuple
import requests
from .base import Provider
from ..utils.errors import (
    ConfigError,
    DependencyViolationError,
    NotFoundError,
    PermanentProviderError,
    TransientProviderError,
)
from ..utils.logging import get_logger

logger = get_logger("providers.http")

RETRYABLE_STATUS = (408, 429, 500, 502, 503, 504)


class HttpProvider(Provider):
    """
    Provider backed by a REST API.

    Endpoints (relative to ``base_url``):
        POST   /resources/{type}         body {"inputs": {...}}  -> {"id": ..., "outputs": {...}}
        GET    /resources/{type}/{id}                            -> {"outputs": {...}}
        PUT    /resources/{type}/{id}    body {"inputs": {...}}  -> {"outputs": {...}}
        DELETE /resources/{type}/{id}
    """

    name = "http"

    def __init__(self, base_url: Optional[str] = None, timeout: float = 30, token: Optional[str] = None):
        """
        Initialize HTTP provider.

        Args:
            base_url: API base URL (default: TIERFORM_PROVIDER_URL)
            timeout: Request timeout in seconds
            token: Bearer token (default: TIERFORM_PROVIDER_TOKEN)
        """
        self.base_url = (base_url or os.getenv("TIERFORM_PROVIDER_URL", "")).rstrip("/")
        if not self.base_url:
            raise ConfigError(
                "The http provider needs a base URL. Set provider.base_url in .tierform/config.yaml "
                "or the TIERFORM_PROVIDER_URL environment variable."
            )
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        token = token or os.getenv("TIERFORM_PROVIDER_TOKEN")
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=payload, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientProviderError(f"{method} {url} failed: {e}")
        except requests.RequestException as e:
            raise PermanentProviderError(f"{method} {url} failed: {e}")

        if response.status_code < 400:
            if response.status_code == 204 or not response.content:
                return {}
            try:
                return response.json()
            except ValueError:
                raise PermanentProviderError(f"{method} {url} returned a non-JSON body")

        message = self._error_message(response)
        logger.debug(f"{method} {url} -> {response.status_code}: {message}")
        if response.status_code in RETRYABLE_STATUS:
            raise TransientProviderError(f"HTTP {response.status_code}: {message}")
        if response.status_code == 404:
            raise NotFoundError(f"HTTP 404: {message}")
        if response.status_code == 409 and method == "DELETE":
            raise DependencyViolationError(f"HTTP 409: {message}")
        raise PermanentProviderError(f"HTTP {response.status_code}: {message}")

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text.strip() or response.reason
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or body)
        return str(body)

    def create(self, resource_type: str, inputs: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        body = self._request("POST", f"/resources/{resource_type}", {"inputs": inputs})
        if "id" not in body:
            raise PermanentProviderError(f"create {resource_type}: response has no 'id'")
        outputs = dict(body.get("outputs") or {})
        outputs.setdefault("id", body["id"])
        return str(body["id"]), outputs

    def read(self, resource_type: str, identifier: str) -> Dict[str, Any]:
        body = self._request("GET", f"/resources/{resource_type}/{identifier}")
        return dict(body.get("outputs") or {})

    def update(self, resource_type: str, identifier: str, inputs: Dict[str, Any]) -> Dict[str, Any]:
        body = self._request("PUT", f"/resources/{resource_type}/{identifier}", {"inputs": inputs})
        return dict(body.get("outputs") or {})

    def delete(self, resource_type: str, identifier: str) -> None:
        self._request("DELETE", f"/resources/{resource_type}/{identifier}")
