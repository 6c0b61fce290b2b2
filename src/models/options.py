"""
Self-describing detector configuration options.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional


class ConfigType(str, Enum):
    BOOLEAN = "bool"
    INTEGER = "int"
    FLOAT = "float"
    ENUM = "enum"


_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ConfigOption:
    """
    A tunable detector parameter.

    Attributes:
        key: Key used in configure() maps.
        display_name: Short label for settings screens.
        description: One-line explanation of the parameter.
        type: Value type.
        default: Default value.
        min_value: Inclusive lower bound (numeric types only).
        max_value: Inclusive upper bound (numeric types only).
        choices: Allowed values (ENUM only).
    """
    key: str
    display_name: str
    description: str
    type: ConfigType
    default: Any
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    choices: Optional[List[str]] = None

    def coerce(self, value: Any) -> Any:
        """
        Convert a raw value to this option's type, clamping numbers into range.

        Raises:
            ValueError: If the value cannot be interpreted for this option.
        """
        if self.type is ConfigType.BOOLEAN:
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in _TRUE_STRINGS:
                    return True
                if lowered in _FALSE_STRINGS:
                    return False
                raise ValueError(f"{self.key}: cannot interpret {value!r} as a boolean")
            return bool(value)

        if self.type is ConfigType.ENUM:
            text = str(value)
            if self.choices is not None and text not in self.choices:
                raise ValueError(f"{self.key}: {value!r} is not one of {self.choices}")
            return text

        if isinstance(value, bool):
            raise ValueError(f"{self.key}: boolean given for numeric option")
        try:
            number = float(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"{self.key}: cannot interpret {value!r} as a number") from e
        if number != number:
            raise ValueError(f"{self.key}: NaN is not a valid value")

        if self.min_value is not None and number < self.min_value:
            logging.debug(f"Clamping {self.key}={number} to minimum {self.min_value}")
            number = self.min_value
        if self.max_value is not None and number > self.max_value:
            logging.debug(f"Clamping {self.key}={number} to maximum {self.max_value}")
            number = self.max_value

        if self.type is ConfigType.INTEGER:
            return int(round(number))
        return float(number)

    def prefixed(self, prefix: str) -> "ConfigOption":
        """Return a copy of this option under a namespaced key."""
        return ConfigOption(
            key=f"{prefix}{self.key}",
            display_name=self.display_name,
            description=self.description,
            type=self.type,
            default=self.default,
            min_value=self.min_value,
            max_value=self.max_value,
            choices=self.choices,
        )
