# infra/config_loader.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Union

import yaml
from pydantic import ValidationError

from infra.config import RunConfig


def _load_raw(path: Path) -> dict:
    """
    Load a raw dict from a YAML or JSON file.
    """
    text = path.read_text(encoding="utf-8")

    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        return yaml.safe_load(text) or {}

    if suffix == ".json":
        return json.loads(text)

    raise ValueError(f"Unsupported config format: {path} (use .yaml/.yml or .json)")


def load_run_config(path: Union[str, Path]) -> RunConfig:
    """
    Load a RunConfig from the given YAML/JSON file.

    Example:
        cfg = load_run_config('config/backtest_run.yml')
    """
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Config file not found: {p}")

    raw = _load_raw(p)
    try:
        return RunConfig.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Config validation failed for {p}:\n{exc}") from exc
