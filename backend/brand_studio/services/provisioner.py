from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from brand_studio.services.errors import LaunchError, ModelExistsError, ProviderError
from brand_studio.services.training_provider import TrainingProvider
from brand_studio.utils.model_name import build_model_name

logger = logging.getLogger(__name__)


class EpochStamp:
    """Epoch seconds that never repeat within a process."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._last = max(int(self.clock()), self._last + 1)
            return self._last


_stamp = EpochStamp()


class ModelProvisioner:
    def __init__(
        self,
        provider: TrainingProvider,
        owner: str,
        *,
        visibility: str = "private",
        hardware: str = "gpu-t4",
        stamp: EpochStamp | None = None,
    ):
        self.provider = provider
        self.owner = owner
        self.visibility = visibility
        self.hardware = hardware
        self.stamp = stamp or _stamp

    def derive_model_name(self, brand_name: str) -> str:
        return build_model_name(brand_name, self.stamp.next())

    def ensure_model(self, name: str) -> str:
        destination = f"{self.owner}/{name}"
        try:
            self.provider.create_model(self.owner, name, visibility=self.visibility, hardware=self.hardware)
            logger.info(f"Created model {destination}")
        except ModelExistsError:
            logger.info(f"Reusing existing model {destination}")
        except ProviderError as exc:
            raise LaunchError(f"Could not create model {destination}: {exc}") from exc
        return destination

    def provision(self, brand_name: str) -> str:
        return self.ensure_model(self.derive_model_name(brand_name))
