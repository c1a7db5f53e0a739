from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from interface_binder import Override


class Bla(ABC):
    @abstractmethod
    def bla(self) -> str:
        ...


@dataclass(frozen=True)
class PrefixedBla(Bla):
    text: str

    def bla(self) -> str:
        return f"{self.text} bla"


@runtime_checkable
class Configuration(Protocol):
    """Configuration for an example service."""

    def test_string(self) -> str:
        """A message to show."""
        ...

    def test_optional_bla(self) -> Bla | None:
        ...

    def test_reverse(self) -> str:
        ...

    def test_boolean(self) -> bool:
        ...

    def test_int(self) -> int:
        ...


class OtherConfiguration(ABC):
    @abstractmethod
    def another_config_parameter(self) -> str:
        """Shares the store with Configuration."""


def reverse(value: str | None) -> str:
    return "" if value is None else value[::-1]


def optional_bla(value: str | None) -> Bla | None:
    return None if value is None else PrefixedBla(value)


STORE = {
    "configuration.test_string": "Test world",
    "configuration.test_int": "1",
    "configuration.test_boolean": "true",
    "configuration.test_optional_bla": "Bla bla",
    "configuration.test_reverse": "Reverse",
    "otherconfiguration.another_config_parameter": "anotherConfigParameter",
}

OVERRIDES: Mapping[str, Override] = {
    "configuration.test_reverse": reverse,
    "configuration.test_optional_bla": optional_bla,
}
