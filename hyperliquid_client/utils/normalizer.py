"""
Response normalization.

Rewrites venue payloads into application form: exchange names become
internal symbols, side codes become words, and numeric strings become
numbers. Output is always a fresh structure.
"""

import re
from typing import Any, Iterable, Mapping, Union

from ..models import SymbolMode

INT_PATTERN = re.compile(r'-?[0-9]+')
FLOAT_PATTERN = re.compile(r'-?[0-9]*\.[0-9]+')

DEFAULT_SYMBOL_FIELDS = ("coin", "symbol")
SIDE_NAMES = {"A": "sell", "B": "buy"}


def convert_to_number(value: Any) -> Any:
    """
    Convert numeric strings to int or float.

    Examples:
        >>> convert_to_number("123")
        123
        >>> convert_to_number("-1.50")
        -1.5
        >>> convert_to_number("1.2.3")
        '1.2.3'
    """
    if isinstance(value, str):
        if INT_PATTERN.fullmatch(value):
            return int(value)
        if FLOAT_PATTERN.fullmatch(value):
            return float(value)
    return value


class ResponseNormalizer:
    """Applies symbol conversion and number parsing to response payloads."""

    def __init__(self, symbols):
        """
        Args:
            symbols: SymbolResolutionCache providing convert_symbol
        """
        self._symbols = symbols

    def normalize(
        self,
        payload: Any,
        symbol_fields: Iterable[str] = DEFAULT_SYMBOL_FIELDS,
        symbol_mode: Union[SymbolMode, str] = SymbolMode.NONE
    ) -> Any:
        """
        Return a normalized copy of payload.

        Args:
            payload: Decoded JSON value
            symbol_fields: Keys whose values are exchange names
            symbol_mode: Disambiguation passed to convert_symbol
        """
        fields = frozenset(symbol_fields)
        return self._convert(payload, fields, symbol_mode)

    def _convert(self, value: Any, fields: frozenset, symbol_mode) -> Any:
        if isinstance(value, Mapping):
            converted = {}
            for key, item in value.items():
                if key in fields and isinstance(item, str):
                    converted[key] = self._symbols.convert_symbol(item, "", symbol_mode)
                elif key == "side" and isinstance(item, str):
                    converted[key] = SIDE_NAMES.get(item, item)
                else:
                    converted[key] = self._convert(item, fields, symbol_mode)
            return converted

        if isinstance(value, list):
            return [self._convert(item, fields, symbol_mode) for item in value]

        if isinstance(value, tuple):
            return tuple(self._convert(item, fields, symbol_mode) for item in value)

        return convert_to_number(value)

    def normalize_keys(self, mapping: Mapping[str, Any]) -> dict[str, Any]:
        """
        Convert exchange-name keys to internal symbols.

        Used for allMids, where coins are keys rather than values.
        """
        return {
            self._symbols.convert_symbol(key): convert_to_number(value)
            for key, value in mapping.items()
        }
