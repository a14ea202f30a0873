"""
Default parameters for the scikit-learn image classifier job.

The defaults live here as a plain dict; operators can override any of them
in the YAML file named by ``settings.TRAINING_JOB_CONFIG_PATH`` without
touching Python code.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml
from django.conf import settings

TRAINER_BASE_PARAMS: Dict[str, Any] = {
    "image_size": (64, 64),
    "validation_split": 0.2,
    "hidden_layer_sizes": (128,),
    "learning_rate_init": 0.001,
    "batch_size": 8,
    "max_iter": 200,
    "random_state": 42,
}


def _get_config_path() -> Path:
    configured = getattr(settings, "TRAINING_JOB_CONFIG_PATH", None)
    if configured:
        return Path(configured)
    return Path(__file__).resolve().parent.parent / "config" / "trainer.yml"


def _load_yaml_config() -> Dict[str, Any]:
    config_path = _get_config_path()
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Trainer config {config_path} must be a mapping.")
    return data


def load_trainer_params(overrides: Dict[str, Any] | None = None) -> Dict[str, Any]:
    """Merge base params, the YAML file, and explicit overrides (in that order)."""
    params: Dict[str, Any] = {
        **TRAINER_BASE_PARAMS,
        **_load_yaml_config(),
        **(overrides or {}),
    }
    params["image_size"] = tuple(int(v) for v in params["image_size"])
    params["hidden_layer_sizes"] = tuple(int(v) for v in params["hidden_layer_sizes"])
    return params
