"""Thinking model catalog loader.

Loads the reasoning-framework catalog from config/thinking_models.yaml.
The catalog is read-only at runtime, so it is cached at module level.
"""

from pathlib import Path
from typing import Dict, Optional

import structlog
import yaml

from ideaverse.core.config import settings
from ideaverse.domain.models.thinking_model import ThinkingModel

log = structlog.get_logger(__name__)

# Module-level cache keyed by catalog path
_cache: Dict[Path, Dict[str, ThinkingModel]] = {}


def load_thinking_models(path: Optional[Path] = None) -> Dict[str, ThinkingModel]:
    """Load the thinking model catalog. Cached after first load.

    Args:
        path: Override config/thinking_models.yaml (mainly for testing)

    Returns:
        Dict mapping model id to ThinkingModel, in catalog order

    Raises:
        FileNotFoundError: Catalog file missing
        ValueError: Catalog has no `models` list or duplicate ids
    """
    if path is None:
        path = settings.config_dir / "thinking_models.yaml"

    if path in _cache:
        return _cache[path]

    if not path.exists():
        raise FileNotFoundError(f"Thinking model catalog not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    entries = data.get("models")
    if not isinstance(entries, list):
        raise ValueError(f"Thinking model catalog has no 'models' list: {path}")

    models: Dict[str, ThinkingModel] = {}
    for entry in entries:
        model = ThinkingModel(**entry)
        if model.id in models:
            raise ValueError(f"Duplicate thinking model id '{model.id}' in {path}")
        models[model.id] = model

    _cache[path] = models
    log.info("thinking_models_loaded", path=str(path), count=len(models))
    return models


def get_thinking_model(
    model_id: str, path: Optional[Path] = None
) -> Optional[ThinkingModel]:
    """Look up one model by id; None if the id is not in the catalog."""
    return load_thinking_models(path).get(model_id)


def format_model_list(models: Optional[Dict[str, ThinkingModel]] = None) -> str:
    """Render the catalog as the bullet list embedded in the recommendation prompt.

    One line per model: "- <id>: <name> - <description>".
    """
    if models is None:
        models = load_thinking_models()
    return "\n".join(
        f"- {m.id}: {m.name} - {m.description}" for m in models.values()
    )


def clear_cache() -> None:
    """Drop cached catalogs (tests point the loader at temporary files)."""
    _cache.clear()
