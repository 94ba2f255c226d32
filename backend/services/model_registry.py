# Model capability registry
# services/model_registry.py
"""
Process-wide table of known (provider, model) pairs.
Owns its own lock; every read returns copies so callers never observe a
half-applied performance update.
"""

import json
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional
import structlog
from models.selection import ModelCapabilities, ModelOption, QualityTier, model_key
from utils.config import settings


logger = structlog.get_logger()


DEFAULT_MODELS: List[ModelOption] = [
    ModelOption(
        provider_id="openai",
        model_id="gpt-4",
        estimated_cost=0.03,
        estimated_duration_ms=5000,
        accuracy_score=0.95,
        capabilities=ModelCapabilities(
            max_tokens=8192, context_window=8192, quality=QualityTier.HIGH,
            supports_streaming=True, supports_functions=True
        )
    ),
    ModelOption(
        provider_id="openai",
        model_id="gpt-3.5-turbo",
        estimated_cost=0.002,
        estimated_duration_ms=2000,
        accuracy_score=0.85,
        capabilities=ModelCapabilities(
            max_tokens=4096, context_window=4096, quality=QualityTier.MEDIUM,
            supports_streaming=True, supports_functions=True
        )
    ),
    ModelOption(
        provider_id="azure",
        model_id="gpt-4",
        estimated_cost=0.03,
        estimated_duration_ms=5000,
        accuracy_score=0.95,
        capabilities=ModelCapabilities(
            max_tokens=8192, context_window=8192, quality=QualityTier.HIGH,
            supports_streaming=True, supports_functions=True,
            extra={"enterprise_features": True}
        )
    ),
    ModelOption(
        provider_id="azure",
        model_id="gpt-35-turbo",
        estimated_cost=0.002,
        estimated_duration_ms=2000,
        accuracy_score=0.85,
        capabilities=ModelCapabilities(
            max_tokens=4096, context_window=4096, quality=QualityTier.MEDIUM,
            supports_streaming=True, supports_functions=True,
            extra={"enterprise_features": True}
        )
    ),
    ModelOption(
        provider_id="gemini",
        model_id="gemini-1.5-pro",
        estimated_cost=0.0035,
        estimated_duration_ms=3500,
        accuracy_score=0.9,
        capabilities=ModelCapabilities(
            max_tokens=8192, context_window=1048576, quality=QualityTier.HIGH,
            supports_streaming=True, supports_functions=True
        )
    ),
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ModelCapabilityRegistry:
    """
    Declared cost/latency/accuracy/capabilities per model key.
    Refreshed from an optional JSON catalog once the refresh interval elapses.
    """

    def __init__(
        self,
        models: Optional[List[ModelOption]] = None,
        catalog_path: Optional[str] = None,
        refresh_interval: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utcnow
    ):
        self._lock = threading.Lock()
        self._models: Dict[str, ModelOption] = {}
        self._catalog_path = catalog_path if catalog_path is not None else settings.model_catalog_path
        self._refresh_interval = refresh_interval or timedelta(seconds=settings.capabilities_refresh_seconds)
        self._clock = clock
        self.logger = logger.bind(component="ModelCapabilityRegistry")

        for model in (models if models is not None else DEFAULT_MODELS):
            self._models[model.key] = model.model_copy(deep=True)

        self._last_refresh = clock()

    def refresh_if_needed(self) -> bool:
        """Reload the catalog when the interval has elapsed; returns True if reloaded"""

        now = self._clock()
        with self._lock:
            if now - self._last_refresh <= self._refresh_interval:
                return False
            self._last_refresh = now

        if not self._catalog_path:
            return False

        try:
            entries = self._load_catalog(Path(self._catalog_path))
        except (OSError, ValueError) as e:
            self.logger.warning("Model catalog refresh failed",
                              path=self._catalog_path,
                              error=str(e))
            return False

        self.merge(entries)
        self.logger.info("Model catalog refreshed", models=len(entries))
        return True

    def merge(self, entries: List[ModelOption]):
        """
        Declared attributes (capabilities, availability) follow the catalog.
        Estimates of an already-known model keep their live values.
        """
        with self._lock:
            for entry in entries:
                existing = self._models.get(entry.key)
                if existing is None:
                    self._models[entry.key] = entry.model_copy(deep=True)
                else:
                    existing.capabilities = entry.capabilities.model_copy(deep=True)
                    existing.is_available = entry.is_available

    def all_models(self) -> List[ModelOption]:
        with self._lock:
            return [m.model_copy(deep=True) for m in self._models.values()]

    def models_for_provider(self, provider_id: str) -> List[ModelOption]:
        provider = provider_id.lower()
        with self._lock:
            return [
                m.model_copy(deep=True) for m in self._models.values()
                if m.provider_id.lower() == provider
            ]

    def providers(self) -> List[str]:
        with self._lock:
            return sorted({m.provider_id for m in self._models.values()})

    def get(self, provider_id: str, model_id: str) -> Optional[ModelOption]:
        with self._lock:
            model = self._models.get(model_key(provider_id, model_id))
            return model.model_copy(deep=True) if model else None

    def apply_performance(self, provider_id: str, model_id: str,
                          duration_ms: float, cost: float, accuracy: float) -> bool:
        """Overwrite the live estimates of one model in place"""
        with self._lock:
            model = self._models.get(model_key(provider_id, model_id))
            if model is None:
                return False
            model.accuracy_score = accuracy
            model.estimated_duration_ms = duration_ms
            model.estimated_cost = cost
            return True

    def set_accuracy(self, provider_id: str, model_id: str, accuracy: float):
        with self._lock:
            model = self._models.get(model_key(provider_id, model_id))
            if model is not None:
                model.accuracy_score = accuracy

    def update_capabilities(self, provider_id: str, model_id: str, capabilities: ModelCapabilities) -> bool:
        with self._lock:
            model = self._models.get(model_key(provider_id, model_id))
            if model is None:
                return False
            model.capabilities = capabilities.model_copy(deep=True)

        self.logger.info("Updated capabilities", provider_id=provider_id, model_id=model_id)
        return True

    @staticmethod
    def _load_catalog(path: Path) -> List[ModelOption]:
        payload = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(payload, dict):
            payload = payload.get("models", [])
        return [ModelOption.model_validate(item) for item in payload]
