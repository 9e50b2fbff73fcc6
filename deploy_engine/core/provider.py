# deploy_engine/core/provider.py

from abc import ABC, abstractmethod
from typing import Any, Dict, Tuple

from deploy_engine.core.models import ProviderStatus, ResourceType


class CloudProvider(ABC):
    """
    Contract of the external cloud provisioning API.

    Implementations raise TransientProviderError for failures worth retrying
    and PermanentProviderError for provider-reported rejections.
    """

    @abstractmethod
    def create(
        self,
        resource_type: ResourceType,
        properties: Dict[str, Any],
    ) -> Tuple[str, ProviderStatus]:
        """Create a resource. Returns (handle, status)."""
        raise NotImplementedError

    @abstractmethod
    def update(self, handle: str, properties: Dict[str, Any]) -> ProviderStatus:
        raise NotImplementedError

    @abstractmethod
    def delete(self, handle: str) -> ProviderStatus:
        raise NotImplementedError

    @abstractmethod
    def get_status(self, handle: str) -> ProviderStatus:
        raise NotImplementedError
