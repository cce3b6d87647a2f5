"""YAML loading with !env tag support for client settings files."""

from __future__ import annotations

import os
from typing import Any

import yaml


class EnvLoader(yaml.SafeLoader):
    """SafeLoader that resolves ``!env VAR`` and ``!env [VAR, default]``."""


def _require_name(value: Any, node: yaml.Node) -> str:
    if not isinstance(value, str):
        raise yaml.constructor.ConstructorError(None, None, f'!env variable name must be a string, got {type(value).__name__}', node.start_mark)
    return value


def _construct_env(loader: EnvLoader, node: yaml.Node) -> Any:
    if isinstance(node, yaml.ScalarNode):
        name = _require_name(loader.construct_scalar(node), node)
        value = os.getenv(name)
        if value is None:
            raise ValueError(f"Required environment variable '{name}' is not set")
        return value

    if isinstance(node, yaml.SequenceNode):
        items = loader.construct_sequence(node)
        if len(items) != 2:
            raise yaml.constructor.ConstructorError(None, None, f'!env sequence takes [var_name, default], got {len(items)} items', node.start_mark)
        name, default = items
        return os.getenv(_require_name(name, node), default)

    raise yaml.constructor.ConstructorError(None, None, f'!env expects a scalar or a two item sequence, got {type(node).__name__}', node.start_mark)


EnvLoader.add_constructor('!env', _construct_env)


def safe_load_with_env(stream) -> Any:
    """yaml.safe_load() equivalent that understands !env tags."""
    return yaml.load(stream, Loader=EnvLoader)


__all__ = ['EnvLoader', 'safe_load_with_env']
