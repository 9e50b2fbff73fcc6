# deploy_engine/executor/retry.py
"""Provider gateway - retried provider calls and ready-waits."""

import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from deploy_engine.core.errors import (
    PermanentProviderError,
    ProviderError,
    StepTimeoutError,
    TransientProviderError,
)
from deploy_engine.core.models import ProviderStatus, ResourceType
from deploy_engine.core.provider import CloudProvider
from deploy_engine.executor.config import EngineConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProviderGateway:
    """
    Wraps a CloudProvider with the engine's retry and wait policy.

    - Transient errors are retried with exponential backoff up to
      `max_attempts`; permanent errors propagate on first occurrence.
    - Waits poll `get_status` until the target status, a provider-reported
      failure, or the timeout.
    """

    def __init__(
        self,
        provider: CloudProvider,
        config: EngineConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._provider = provider
        self._config = config
        self._sleep = sleep
        self._clock = clock

    # -------------------------
    # RETRY
    # -------------------------

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self._config.max_attempts),
            wait=wait_exponential(
                multiplier=self._config.backoff_multiplier,
                min=self._config.backoff_min_seconds,
                max=self._config.backoff_max_seconds,
            ),
            retry=retry_if_exception_type(TransientProviderError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )

    def call(self, resource_id: str, func: Callable[..., T], *args, **kwargs) -> T:
        """Invoke a provider method under the retry policy."""
        try:
            for attempt in self._retrying():
                with attempt:
                    return func(*args, **kwargs)
        except ProviderError as e:
            if e.resource_id is None:
                e.resource_id = resource_id
            raise

    # -------------------------
    # OPERATIONS
    # -------------------------

    def create(
        self,
        resource_id: str,
        resource_type: ResourceType,
        properties: Dict[str, Any],
        *,
        on_handle: Optional[Callable[[str], None]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Create a resource and wait until it is READY.

        `on_handle` is invoked with the new handle before waiting, so the
        caller can persist it even when the wait later fails.
        """
        handle, status = self.call(
            resource_id, self._provider.create, resource_type, properties
        )
        if on_handle is not None:
            on_handle(handle)
        self.wait_for(resource_id, handle, status, ProviderStatus.READY, timeout)
        return handle

    def update(
        self,
        resource_id: str,
        handle: str,
        properties: Dict[str, Any],
        *,
        timeout: Optional[float] = None,
    ) -> None:
        status = self.call(resource_id, self._provider.update, handle, properties)
        self.wait_for(resource_id, handle, status, ProviderStatus.READY, timeout)

    def delete(
        self,
        resource_id: str,
        handle: str,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        status = self.call(resource_id, self._provider.delete, handle)
        self.wait_for(resource_id, handle, status, ProviderStatus.DELETED, timeout)

    # -------------------------
    # WAIT
    # -------------------------

    def wait_for(
        self,
        resource_id: str,
        handle: str,
        status: ProviderStatus,
        target: ProviderStatus,
        timeout: Optional[float] = None,
    ) -> None:
        timeout = timeout or self._config.default_timeout_seconds
        deadline = self._clock() + timeout

        while True:
            if status == target:
                return

            if status == ProviderStatus.FAILED:
                raise PermanentProviderError(
                    f"Provider reported FAILED for {handle}",
                    resource_id=resource_id,
                )

            if status == ProviderStatus.DELETED and target == ProviderStatus.READY:
                raise PermanentProviderError(
                    f"Resource {handle} disappeared while waiting for READY",
                    resource_id=resource_id,
                )

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise StepTimeoutError(
                    f"Timed out after {timeout}s waiting for {target.value} "
                    f"(last status: {status.value})",
                    resource_id=resource_id,
                )

            logger.debug(
                f"[provider] {resource_id} ({handle}) is {status.value}, "
                f"waiting for {target.value} ({remaining:.1f}s left)"
            )
            self._sleep(min(self._config.poll_interval_seconds, remaining))
            status = self.call(resource_id, self._provider.get_status, handle)
