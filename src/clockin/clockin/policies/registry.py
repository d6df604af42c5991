from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, Mapping, Optional

from ..core.exceptions import TargetModelNotAllowedError, ValidationError
from .defaults import generate_default_config
from .model import TargetModelConfig

logger = logging.getLogger(__name__)


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict:
    """Merge ``override`` onto ``base`` without mutating either.

    Only plain mappings are merged recursively. Lists, dates and scalars in
    ``override`` replace the base value wholesale; ``None`` values are skipped.
    A mapping that contains itself raises ValidationError.
    """

    return _merge(base, override, set())


def _merge(base: Mapping[str, Any], override: Mapping[str, Any], active: set[int]) -> dict:
    marker = id(override)
    if marker in active:
        raise ValidationError("Circular reference in configuration override")
    active.add(marker)
    try:
        result = {key: _copy(value) for key, value in base.items()}
        for key, value in override.items():
            if value is None:
                continue
            current = result.get(key)
            if isinstance(value, Mapping):
                result[key] = _merge(current if isinstance(current, Mapping) else {}, value, active)
            elif isinstance(value, list):
                result[key] = list(value)
            else:
                result[key] = value
        return result
    finally:
        active.discard(marker)


def _copy(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _copy(v) for k, v in value.items()}
    if isinstance(value, list):
        return list(value)
    return value


class ConfigRegistry:
    """Per-instance cache of target-model configurations.

    Nothing here is process-global: two containers never see each other's
    overrides.
    """

    def __init__(
        self,
        *,
        overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
        allowed_target_models: Optional[Iterable[str]] = None,
    ):
        self._configs: dict[str, TargetModelConfig] = {}
        self._lock = threading.Lock()
        self._allowed = frozenset(allowed_target_models) if allowed_target_models else None
        for target_model, override in (overrides or {}).items():
            self.register(target_model, override)

    @property
    def allowed_target_models(self) -> Optional[frozenset[str]]:
        return self._allowed

    def is_allowed(self, target_model: str) -> bool:
        return self._allowed is None or target_model in self._allowed

    def ensure_allowed(self, target_model: str) -> None:
        if not self.is_allowed(target_model):
            raise TargetModelNotAllowedError(
                f"Target model {target_model!r} is not enabled for attendance",
                context={"target_model": target_model, "allowed": sorted(self._allowed or ())},
            )

    def get(self, target_model: str) -> TargetModelConfig:
        with self._lock:
            config = self._configs.get(target_model)
            if config is None:
                config = generate_default_config(target_model)
                self._configs[target_model] = config
            return config

    def register(self, target_model: str, override: Mapping[str, Any]) -> TargetModelConfig:
        merged = deep_merge(generate_default_config(target_model).to_dict(), override)
        config = TargetModelConfig.from_dict(target_model, merged)
        with self._lock:
            self._configs[target_model] = config
        logger.info("Registered attendance config for %s (%s)", target_model, config.detection.type.value)
        return config

    def registered_models(self) -> list[str]:
        with self._lock:
            return sorted(self._configs)
