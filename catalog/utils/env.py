"""Environment variable parsing helpers for settings dataclasses."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar, cast

if TYPE_CHECKING:
    from collections.abc import Callable

T = TypeVar("T")

TRUE_VALUES = {"True", "true", "1", "yes", "Y", "T"}


def get_config_val(key: str, default: Any, type_hint: Any = None) -> Any:
    """Parse an environment variable into the type of ``default``.

    Args:
        key: Environment variable name
        default: Value returned when the variable is unset
        type_hint: Optional explicit type, used for list values

    Returns:
        The parsed value, or ``default`` when the variable is unset
    """
    str_value = os.getenv(key)
    if str_value is None:
        return default
    if type(default) is bool or type_hint is bool:
        return str_value in TRUE_VALUES
    if type(default) is int or type_hint is int:
        return int(str_value)
    if type(default) is float or type_hint is float:
        return float(str_value)
    if isinstance(default, Path) or type_hint is Path:
        return Path(str_value)
    if isinstance(default, list) or (type_hint is not None and getattr(type_hint, "__origin__", None) is list):
        if str_value.startswith("[") and str_value.endswith("]"):
            try:
                return json.loads(str_value)
            except (SyntaxError, ValueError) as e:
                msg = f"{key} is not a valid list representation."
                raise ValueError(msg) from e
        return [item.strip() for item in str_value.split(",") if item.strip()]
    return str_value


def get_env(key: str, default: T, type_hint: Any = None) -> Callable[[], T]:
    """Return a ``default_factory`` reading ``key`` from the environment."""
    return lambda: cast("T", get_config_val(key=key, default=default, type_hint=type_hint))
