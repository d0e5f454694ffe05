"""Safe YAML loader."""
from pathlib import Path
from typing import Union

import yaml


def load_yaml(path: Union[str, Path]) -> dict:
    with open(path) as fh:
        return yaml.safe_load(fh) or {}


def load_yaml_if_exists(path: Union[str, Path]) -> dict:
    """Like :func:`load_yaml` but a missing file yields an empty mapping."""

    if not Path(path).exists():
        return {}
    return load_yaml(path)
