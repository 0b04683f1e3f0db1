# headerapp/parser.py
# Rule parser for per-site header secrets.
#
# A secret field name is a comma separated pattern list:
#
#     /*.jpg,/*.png,/*.webp
#
# and its value is a semicolon separated header list:
#
#     access-control-allow-credentials:true; access-control-allow-methods: GET,PUT
#
# Parsing never raises; malformed declarations are dropped.

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Protocol, Tuple

PATTERN_SEPARATOR = ","
HEADER_SEPARATOR = ";"
NAME_VALUE_SEPARATOR = ":"


@dataclass(frozen=True)
class Rule:
    """A pattern set paired with the headers to apply when any pattern matches."""

    patterns: Tuple[str, ...] = ()
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        object.__setattr__(self, "patterns", tuple(self.patterns))
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def __hash__(self) -> int:
        return hash((self.patterns, tuple(self.headers.items())))


class HeaderSecretsParser(Protocol):
    def parse(self, patterns_field: str, headers_field: str) -> Rule: ...


def split_patterns(patterns_field: Optional[str]) -> Tuple[str, ...]:
    # Empty tokens are kept; the engine decides what an empty pattern means.
    return tuple(token.strip() for token in (patterns_field or "").split(PATTERN_SEPARATOR))


def split_headers(headers_field: Optional[str]) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for declaration in (headers_field or "").split(HEADER_SEPARATOR):
        name, sep, value = declaration.partition(NAME_VALUE_SEPARATOR)
        if not sep:
            continue
        name = name.strip()
        if not name:
            # ": value" would set a nameless HTTP header; dropped, unlike a plain split
            continue
        headers[name] = value.strip()
    return headers


class DefaultHeaderSecretsParser:
    """Default ``HeaderSecretsParser``: comma patterns, ``name: value;`` headers."""

    def parse(self, patterns_field: str, headers_field: str) -> Rule:
        return Rule(patterns=split_patterns(patterns_field), headers=split_headers(headers_field))


_DEFAULT = DefaultHeaderSecretsParser()


def parse(patterns_field: str, headers_field: str) -> Rule:
    return _DEFAULT.parse(patterns_field, headers_field)
