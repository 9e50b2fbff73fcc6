# cloud_provider/client.py
"""Cloud provisioning API client."""

import logging
from typing import Any, Dict, Optional, Tuple

import requests

from cloud_provider.config import ProviderSettings
from deploy_engine.core.errors import PermanentProviderError, TransientProviderError
from deploy_engine.core.models import ProviderStatus, ResourceType
from deploy_engine.core.provider import CloudProvider

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {408, 425, 429}


class CloudProviderClient(CloudProvider):
    """Client for the HTTP provisioning API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize client.

        Args:
            base_url: Base URL of the provisioning API (e.g., "http://10.0.1.10:9100")
            timeout: Request timeout in seconds
            token: Optional bearer token
            session: Optional requests session (connection reuse, testing)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._session = session or requests.Session()
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_settings(cls, settings: ProviderSettings) -> "CloudProviderClient":
        return cls(settings.url, timeout=settings.timeout_seconds, token=settings.token)

    def health_check(self) -> bool:
        """
        Check if the provisioning API is reachable.

        Returns:
            True if healthy, False otherwise
        """
        try:
            response = self._session.get(f"{self.base_url}/health", timeout=5)
            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.error(f"[provider] Health check failed: {e}")
            return False

    # -------------------------
    # OPERATIONS
    # -------------------------

    def create(
        self,
        resource_type: ResourceType,
        properties: Dict[str, Any],
    ) -> Tuple[str, ProviderStatus]:
        data = self._request(
            "POST",
            "/resources",
            json={"type": resource_type.value, "properties": properties},
        )
        handle = data.get("handle")
        if not handle:
            raise PermanentProviderError("Provider response is missing 'handle'")

        logger.info(f"[provider] Created {resource_type.value}: {handle}")
        return handle, self._status(data)

    def update(self, handle: str, properties: Dict[str, Any]) -> ProviderStatus:
        data = self._request("PUT", f"/resources/{handle}", json={"properties": properties})
        return self._status(data)

    def delete(self, handle: str) -> ProviderStatus:
        data = self._request("DELETE", f"/resources/{handle}", missing_ok=True)
        if data is None:
            return ProviderStatus.DELETED
        return self._status(data, default=ProviderStatus.DELETED)

    def get_status(self, handle: str) -> ProviderStatus:
        data = self._request("GET", f"/resources/{handle}", missing_ok=True)
        if data is None:
            return ProviderStatus.DELETED
        return self._status(data)

    # -------------------------
    # INTERNAL HELPERS
    # -------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        missing_ok: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        Send a request and map failures onto the provider error taxonomy.

        Returns None for a 404 when `missing_ok` is set.
        """
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(method, url, json=json, timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise TransientProviderError(f"{method} {path} timed out after {self.timeout}s")
        except requests.exceptions.ConnectionError:
            raise TransientProviderError(f"Cannot connect to provisioning API at {self.base_url}")
        except requests.exceptions.RequestException as e:
            raise TransientProviderError(f"{method} {path} failed: {e}")

        if response.status_code == 404 and missing_ok:
            return None

        if response.status_code >= 500 or response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientProviderError(
                f"{method} {path} -> HTTP {response.status_code}: {self._detail(response)}"
            )

        if response.status_code >= 400:
            raise PermanentProviderError(
                f"{method} {path} rejected (HTTP {response.status_code}): {self._detail(response)}"
            )

        if not response.content:
            return {}

        try:
            return response.json()
        except ValueError:
            raise PermanentProviderError(f"{method} {path} returned a non-JSON body")

    @staticmethod
    def _detail(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text
        if isinstance(body, dict):
            return str(body.get("detail", body))
        return str(body)

    @staticmethod
    def _status(
        data: Dict[str, Any],
        default: ProviderStatus = ProviderStatus.PENDING,
    ) -> ProviderStatus:
        raw = data.get("status")
        if raw is None:
            return default
        try:
            return ProviderStatus(str(raw).upper())
        except ValueError:
            raise PermanentProviderError(f"Unknown provider status '{raw}'")
