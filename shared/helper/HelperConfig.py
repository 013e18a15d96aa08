"""Environment-backed settings for the bento RAG bridge.

Every component reads its configuration through one HelperConfig instance,
which also carries the application logger. Keys are case-insensitive and an
empty variable counts as unset.
"""

import logging
import os
from typing import Any, Callable


class HelperConfig:
    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    ##########################################
    ################ LOOKUP ##################
    ##########################################

    def _lookup(self, key: str) -> str | None:
        raw = os.getenv(key.upper())
        if raw is None or not raw.strip():
            return None
        return raw.strip()

    def _resolve(self, key: str, default: Any, parse: Callable[[str], Any]) -> Any:
        raw = self._lookup(key)
        if raw is None:
            if default is None:
                raise ValueError(f"Environment variable '{key.upper()}' is not set.")
            return default
        return parse(raw)

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_string_val(self, key: str, default: str | None = None) -> str:
        """Read a string variable.

        Raises:
            ValueError: If the variable is not set and no default is provided.
        """
        return self._resolve(key, default, lambda raw: raw)

    def get_number_val(
        self,
        key: str,
        default: float | int | None = None,
        min_val: float | int | None = None,
        max_val: float | int | None = None,
    ) -> float | int:
        """Read a numeric variable. Values without a decimal point are returned as int.

        Args:
            key (str): Variable name.
            default (float | int | None): Fallback if unset; None makes the variable required.
            min_val (float | int | None): Inclusive lower bound.
            max_val (float | int | None): Inclusive upper bound.

        Raises:
            ValueError: If the variable is unset without default, not a number, or out of bounds.
        """

        def parse(raw: str) -> float | int:
            try:
                return int(raw) if "." not in raw else float(raw)
            except ValueError:
                raise ValueError(f"Environment variable '{key.upper()}' is not a valid number: '{raw}'.")

        value = self._resolve(key, default, parse)
        if min_val is not None and value < min_val:
            raise ValueError(f"Environment variable '{key.upper()}' must be >= {min_val}. Got: {value}")
        if max_val is not None and value > max_val:
            raise ValueError(f"Environment variable '{key.upper()}' must be <= {max_val}. Got: {value}")
        return value

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        """Read a boolean variable; "true", "1", "yes" and "on" are true, anything else false."""
        return self._resolve(key, default, lambda raw: raw.lower() in ("true", "1", "yes", "on"))

    def get_list_val(self, key: str, default: list | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read a list variable written as "[elem1,elem2,...]".

        Args:
            key (str): Variable name.
            default (list | None): Fallback if unset.
            separator (str): The delimiter between elements.
            element_type (type): The type each element is cast to.

        Raises:
            ValueError: If unset without default, not bracketed, or an element cannot be cast.
        """

        def parse(raw: str) -> list:
            if not raw.startswith("[") or not raw.endswith("]"):
                raise ValueError(f"Environment variable '{key.upper()}' must be in the format '[elem1{separator}elem2{separator}...]'. Got: '{raw}'")
            elements = [v.strip() for v in raw[1:-1].split(separator) if v.strip()]
            try:
                return [element_type(elem) for elem in elements]
            except ValueError as e:
                raise ValueError(f"Environment variable '{key.upper()}' contains invalid elements: {e}. Got: '{raw}'")

        return self._resolve(key, default, parse)

    def get_choice_val(self, key: str, choices: list[str], default: str | None = None) -> str:
        """Read a string variable restricted to a fixed set of lowercase values.

        Raises:
            ValueError: If the value is not one of the allowed choices.
        """
        val = self.get_string_val(key, default=default).lower()
        if val not in choices:
            raise ValueError(f"Environment variable '{key.upper()}' must be one of {choices}. Got: '{val}'")
        return val

    def get_logger(self) -> logging.Logger:
        return self._logger
