from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping

import yaml

logger = logging.getLogger(__name__)

_KNOWN_KEYS = {
    "max_iterations",
    "time_budget_seconds",
    "stop_when_no_improvement",
    "patience",
    "show_progress",
    "log_every",
}


def _coerce_bool(value: object, label: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "yes", "1", "false", "no", "0"}:
        return value.strip().lower() in {"true", "yes", "1"}
    raise ValueError(f"Optimizer config {label} must be a boolean, got {value!r}")


@dataclass
class OptimizerConfig:
    """Budget and reporting knobs for repeated green-light order optimization."""

    max_iterations: int = 10
    time_budget_seconds: float | None = None
    stop_when_no_improvement: bool = True
    patience: int = 1
    show_progress: bool = True
    log_every: int = 1

    def __post_init__(self) -> None:
        self._validate()

    def _validate(self) -> None:
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if self.time_budget_seconds is not None and self.time_budget_seconds <= 0:
            raise ValueError("time_budget_seconds must be positive when provided")
        if self.patience < 1:
            raise ValueError("patience must be at least 1")
        if self.log_every < 0:
            raise ValueError("log_every cannot be negative")

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "OptimizerConfig":
        if not isinstance(data, Mapping):
            raise TypeError("Optimizer config must be a mapping")
        unknown = sorted(set(data) - _KNOWN_KEYS)
        if unknown:
            logger.warning("Ignoring unknown optimizer config keys: %s", ", ".join(unknown))

        kwargs: Dict[str, object] = {}
        try:
            if "max_iterations" in data:
                kwargs["max_iterations"] = int(data["max_iterations"])
            if data.get("time_budget_seconds") is not None:
                kwargs["time_budget_seconds"] = float(data["time_budget_seconds"])
            if "patience" in data:
                kwargs["patience"] = int(data["patience"])
            if "log_every" in data:
                kwargs["log_every"] = int(data["log_every"])
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid optimizer config value: {exc}") from exc
        for key in ("stop_when_no_improvement", "show_progress"):
            if key in data:
                kwargs[key] = _coerce_bool(data[key], key)
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "OptimizerConfig":
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Optimizer config YAML not found at {config_path}")
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, Mapping):
            raise TypeError("Optimizer config YAML must contain a mapping at the top level")
        return cls.from_mapping(data)

    def to_dict(self) -> Dict[str, object]:
        output: Dict[str, object] = {
            "max_iterations": self.max_iterations,
            "stop_when_no_improvement": self.stop_when_no_improvement,
            "patience": self.patience,
            "show_progress": self.show_progress,
            "log_every": self.log_every,
        }
        if self.time_budget_seconds is not None:
            output["time_budget_seconds"] = float(self.time_budget_seconds)
        return output

    def to_yaml(self, path: str | Path) -> None:
        dest = Path(path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        with dest.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(self.to_dict(), handle, sort_keys=True)


__all__ = ["OptimizerConfig"]
