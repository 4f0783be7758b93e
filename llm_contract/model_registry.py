"""Model descriptor registry keyed by model id."""

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from .schemas import ModelConfig


class ModelRegistry(Mapping[str, ModelConfig]):
    def __init__(self, configs: Iterable[ModelConfig] = ()) -> None:
        self._configs: dict[str, ModelConfig] = {}
        for config in configs:
            if config.model_id in self._configs:
                raise ValueError(f"Duplicate model id: {config.model_id}")
            self._configs[config.model_id] = config

    def __getitem__(self, model_id: str) -> ModelConfig:
        return self._configs[model_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._configs)

    def __len__(self) -> int:
        return len(self._configs)

    def providers(self) -> set[str]:
        return {config.provider for config in self._configs.values()}


def load_model_registry(entries: Iterable[ModelConfig | Mapping[str, Any]]) -> ModelRegistry:
    """Build a registry from descriptors or raw camelCase/snake_case mappings."""
    return ModelRegistry(
        entry if isinstance(entry, ModelConfig) else ModelConfig.model_validate(entry)
        for entry in entries
    )
