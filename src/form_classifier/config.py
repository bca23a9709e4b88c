"""Training configuration and model file discovery."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

MODEL_ENV_VAR = "FORM_CLASSIFIER_MODEL"
DEFAULT_MODEL_NAME = "model.json"


@dataclass(frozen=True)
class TrainConfig:
    """Hyperparameters for the linear classifiers.

    Attributes:
        C: Inverse L2 regularization strength (must be positive).
        max_iter: Optimiser iteration bound.
        balance_classes: Weight samples inversely to class frequency.
        tol: Gradient infinity-norm convergence threshold.
    """

    C: float = 5.0
    max_iter: int = 100
    balance_classes: bool = True
    tol: float = 1e-4

    def __post_init__(self) -> None:
        if self.C <= 0:
            raise ValueError(f"C must be positive, got {self.C}")
        if self.max_iter < 1:
            raise ValueError(f"max_iter must be >= 1, got {self.max_iter}")


def model_dir() -> Path:
    """Per-user model directory (``~/.form-classifier``)."""
    return Path.home() / ".form-classifier"


def find_model(name: str = DEFAULT_MODEL_NAME, start: str | Path | None = None) -> Path:
    """Locate a model file.

    Search order: the ``FORM_CLASSIFIER_MODEL`` environment variable, then
    ``start`` (default: the current directory) and its parents up to the
    first directory holding a ``pyproject.toml``, then ``~/.form-classifier/``.

    Raises:
        FileNotFoundError: If no model file is found.
    """
    env_path = os.environ.get(MODEL_ENV_VAR)
    if env_path:
        path = Path(env_path).expanduser()
        if path.is_file():
            return path
        raise FileNotFoundError(f"{MODEL_ENV_VAR} points to a missing file: {path}")

    directory = Path(start or Path.cwd()).resolve()
    for candidate_dir in (directory, *directory.parents):
        candidate = candidate_dir / name
        if candidate.is_file():
            return candidate
        if (candidate_dir / "pyproject.toml").exists():
            break

    candidate = model_dir() / name
    if candidate.is_file():
        return candidate

    raise FileNotFoundError(f"{name} not found (searched from {directory} and {model_dir()})")
