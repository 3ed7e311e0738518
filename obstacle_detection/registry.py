"""
Model registry.

Maps a model identifier to its weights file and label file. Entries are
read from a YAML manifest so new model variants can be added without
touching the pipeline:

    default: yolov8_18_obstacles_fp32
    models:
      yolov8_18_obstacles_fp32:
        display_name: "18 Obstacles YOLOv8 FP32"
        weights: models/18Obstacles_yolov8_float32.onnx
        labels: models/18Obstacles_labels.txt

Paths are kept as written; resolution against the project root happens
in config.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Iterator, List, Mapping, Optional, Union

import yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelEntry:
    """One registered model variant."""

    model_id: str
    display_name: str
    weights_path: str
    label_path: str


class ModelRegistry:
    """Immutable lookup of model variants by identifier."""

    def __init__(self, entries: Mapping[str, ModelEntry], default_id: Optional[str] = None) -> None:
        if not entries:
            raise ValueError("Model registry must contain at least one model.")
        if default_id is not None and default_id not in entries:
            raise ValueError(
                f"Default model '{default_id}' is not registered. "
                f"Known models: {sorted(entries)}."
            )
        self._entries = MappingProxyType(dict(entries))
        self._default_id = default_id if default_id is not None else next(iter(entries))

    def get(self, model_id: str) -> ModelEntry:
        """Return the entry for model_id.

        Raises:
            KeyError: If model_id is not registered.
        """
        try:
            return self._entries[model_id]
        except KeyError:
            raise KeyError(
                f"Unknown model id '{model_id}'. Known models: {self.ids()}."
            ) from None

    @property
    def default(self) -> ModelEntry:
        return self._entries[self._default_id]

    def ids(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._entries

    def __iter__(self) -> Iterator[ModelEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


def _parse_entry(model_id: str, raw: object) -> ModelEntry:
    if not isinstance(raw, dict):
        raise ValueError(f"Model '{model_id}' must be a mapping, got {type(raw).__name__}.")
    for key in ("weights", "labels"):
        if key not in raw:
            raise ValueError(f"Model '{model_id}' is missing required key '{key}'.")
    return ModelEntry(
        model_id=model_id,
        display_name=str(raw.get("display_name", model_id)),
        weights_path=str(raw["weights"]),
        label_path=str(raw["labels"]),
    )


def load_registry(manifest_path: Union[str, Path]) -> ModelRegistry:
    """Load a model registry from a YAML manifest.

    Raises:
        FileNotFoundError: If the manifest does not exist.
        ValueError: If the manifest is structurally invalid.
        yaml.YAMLError: If the YAML is malformed.
    """
    path = Path(manifest_path)
    if not path.is_file():
        raise FileNotFoundError(f"Model manifest not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    models = raw.get("models")
    if not isinstance(models, dict) or not models:
        raise ValueError(f"Model manifest {path} has no 'models' mapping.")

    entries = {str(mid): _parse_entry(str(mid), raw_entry) for mid, raw_entry in models.items()}
    default_id = raw.get("default")

    registry = ModelRegistry(entries, None if default_id is None else str(default_id))
    logger.info("Loaded %d model entries from %s (default=%s)",
                len(registry), path, registry.default.model_id)
    return registry
