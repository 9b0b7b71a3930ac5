"""
Parameter-file reader implementing the typed accessor contract.

File format, one entry per line::

    option size <int>: 2
    spot <vector>: 100 110
    interest rate <float>: 0.04879
    option type <string>: basket

Supported types are ``int``, ``long``, ``float``, ``vector`` and
``string``. A vector written with a single value is broadcast to the
requested size. Text after ``#`` is ignored.

NEVER fails silently - missing keys and malformed values raise
ConfigurationError naming the offending key and line.
"""

import logging
import re
from pathlib import Path
from typing import Protocol, Union

import numpy as np

from basket_pricing.errors import ConfigurationError

logger = logging.getLogger(__name__)

_LINE_PATTERN = re.compile(r"^(?P<key>[^<>]+?)\s*<(?P<type>\w+)>\s*:\s*(?P<value>.*)$")

_SUPPORTED_TYPES = ("int", "long", "float", "vector", "string")


class ParameterSource(Protocol):
    """Typed accessors the pricing core reads its configuration through."""

    def extract_scalar(self, name: str) -> float:
        ...

    def extract_vector(self, name: str, size: int) -> np.ndarray:
        ...

    def extract_int(self, name: str) -> int:
        ...

    def extract_string(self, name: str) -> str:
        ...


class ParameterFile:
    """
    In-memory view of a parsed parameter file.

    Parameters
    ----------
    entries : dict[str, tuple[str, str]]
        Mapping key -> (declared type, raw value text)
    origin : str
        Where the entries came from, used in error messages

    Examples
    --------
    >>> params = ParameterFile.from_path("data/basket.dat")
    >>> params.extract_int("option size")
    40
    """

    def __init__(self, entries: dict[str, tuple[str, str]], origin: str = "<memory>"):
        self._entries = dict(entries)
        self.origin = origin

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "ParameterFile":
        """Load and parse a parameter file from disk."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"CRITICAL: parameter file not found: {path}")
        logger.debug(f"Loading parameters from {path}")
        return cls.from_text(path.read_text(encoding="utf-8"), origin=str(path))

    @classmethod
    def from_text(cls, text: str, origin: str = "<memory>") -> "ParameterFile":
        """Parse parameter-file text."""
        entries: dict[str, tuple[str, str]] = {}
        for lineno, raw_line in enumerate(text.splitlines(), start=1):
            line = raw_line.split("#", 1)[0].strip()
            if not line:
                continue
            match = _LINE_PATTERN.match(line)
            if match is None:
                raise ConfigurationError(
                    f"CRITICAL: {origin}:{lineno}: expected 'key <type>: value', got {raw_line!r}"
                )
            key = match.group("key").strip()
            type_name = match.group("type").lower()
            if type_name not in _SUPPORTED_TYPES:
                raise ConfigurationError(
                    f"CRITICAL: {origin}:{lineno}: unsupported type <{type_name}> for '{key}'. "
                    f"Supported: {', '.join(_SUPPORTED_TYPES)}"
                )
            entries[key] = (type_name, match.group("value").strip())
        return cls(entries, origin=origin)

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def keys(self) -> list[str]:
        return list(self._entries)

    def _lookup(self, name: str, allowed: tuple[str, ...]) -> str:
        if name not in self._entries:
            raise ConfigurationError(f"CRITICAL: missing parameter '{name}' in {self.origin}")
        type_name, value = self._entries[name]
        if type_name not in allowed:
            raise ConfigurationError(
                f"CRITICAL: parameter '{name}' declared <{type_name}>, expected one of {allowed}"
            )
        if not value:
            raise ConfigurationError(f"CRITICAL: parameter '{name}' has no value")
        return value

    def extract_scalar(self, name: str) -> float:
        value = self._lookup(name, ("float", "int", "long"))
        try:
            return float(value)
        except ValueError:
            raise ConfigurationError(
                f"CRITICAL: parameter '{name}' is not a number: {value!r}"
            ) from None

    def extract_int(self, name: str) -> int:
        value = self._lookup(name, ("int", "long"))
        try:
            return int(value)
        except ValueError:
            raise ConfigurationError(
                f"CRITICAL: parameter '{name}' is not an integer: {value!r}"
            ) from None

    def extract_vector(self, name: str, size: int) -> np.ndarray:
        """
        Extract a float vector of the given size.

        A single value is broadcast to ``size`` entries.
        """
        if size <= 0:
            raise ConfigurationError(f"CRITICAL: vector size must be > 0, got {size}")
        value = self._lookup(name, ("vector", "float", "int", "long"))
        try:
            values = np.array([float(v) for v in value.replace(",", " ").split()])
        except ValueError:
            raise ConfigurationError(
                f"CRITICAL: parameter '{name}' is not a vector of numbers: {value!r}"
            ) from None
        if values.size == 1:
            return np.full(size, values[0])
        if values.size != size:
            raise ConfigurationError(
                f"CRITICAL: parameter '{name}' has {values.size} values, expected {size}"
            )
        return values

    def extract_string(self, name: str) -> str:
        return self._lookup(name, ("string",))

    def get_scalar(self, name: str, default: float) -> float:
        """Optional scalar lookup."""
        if name not in self._entries:
            return default
        return self.extract_scalar(name)

    def get_int(self, name: str, default: int) -> int:
        """Optional integer lookup."""
        if name not in self._entries:
            return default
        return self.extract_int(name)
