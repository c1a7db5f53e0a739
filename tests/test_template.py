from __future__ import annotations

from io import StringIO
from typing import Protocol

import pytest

from interface_binder import Binder, Char, InvalidSignatureError, generate_template

from .example import Bla, Configuration, OtherConfiguration


def test_format_template_example() -> None:
    """The template lists every accessor's key and return type, after a header naming the interface."""

    assert list(Binder(Configuration).format_template()) == [
        "# Auto-generated property file for test interface Configuration in package tests.example",
        "configuration.test_string: <str>",
        "configuration.test_optional_bla: <Bla | None>",
        "configuration.test_reverse: <str>",
        "configuration.test_boolean: <bool>",
        "configuration.test_int: <int>",
    ]


def test_generate_template_sink() -> None:
    """The template is written to the sink as one line per accessor plus the header."""

    with StringIO() as sink:
        generate_template(OtherConfiguration, sink)
        text = sink.getvalue()

    assert text == (
        "# Auto-generated property file for test interface OtherConfiguration in package tests.example\n"
        "otherconfiguration.another_config_parameter: <str>\n"
    )


@pytest.mark.parametrize("interface, count", ((Configuration, 5), (OtherConfiguration, 1)))
def test_generate_template_line_count(interface: type[object], count: int) -> None:
    with StringIO() as sink:
        generate_template(interface, sink)
        lines = sink.getvalue().splitlines()

    assert len(lines) == count + 1
    assert lines[0].startswith("# ")


def test_format_template_empty() -> None:
    """An interface without accessors only produces the header."""

    class Empty(Protocol):
        pass

    assert list(Binder(Empty).format_template()) == [
        "# Auto-generated property file for test interface Empty in package tests.test_template"
    ]


class Detailed(Protocol):
    def tags(self) -> list[str]:
        ...

    def limits(self) -> dict[str, int]:
        ...

    def initial(self) -> Char:
        ...

    def key(self) -> bytes:
        ...

    def fallback(self) -> Bla | None:
        ...


def test_format_template_type_names() -> None:
    """Type names are simple names, including those of generic, union and sized types."""

    assert list(Binder(Detailed).format_template())[1:] == [
        "detailed.tags: <list[str]>",
        "detailed.limits: <dict[str, int]>",
        "detailed.initial: <Char>",
        "detailed.key: <bytes>",
        "detailed.fallback: <Bla | None>",
    ]


def test_format_template_does_not_need_store() -> None:
    """Templates can be generated for interfaces whose return types need overrides to bind."""

    with StringIO() as sink:
        generate_template(Detailed, sink)
        assert "detailed.fallback: <Bla | None>\n" in sink.getvalue()


def test_generate_template_invalid_interface() -> None:
    """Templates only describe methods, so they can be generated for interfaces that cannot be bound."""

    class BadConfig(Protocol):
        def lookup(self, name: str) -> str:
            ...

        def reset(self) -> None:
            ...

        def untyped(self):  # type: ignore[no-untyped-def]
            ...

        def missing(self) -> NoSuchType:  # type: ignore[name-defined]  # noqa: F821
            ...

    with StringIO() as sink:
        generate_template(BadConfig, sink)
        lines = sink.getvalue().splitlines()

    assert lines[1:] == [
        "badconfig.lookup: <str>",
        "badconfig.reset: <None>",
        "badconfig.untyped: <Any>",
        "badconfig.missing: <NoSuchType>",
    ]

    with pytest.raises(InvalidSignatureError, match=r"^Accessor 'BadConfig.lookup' has parameters: 'name'$"):
        Binder(BadConfig)


def test_generate_template_sink_error() -> None:
    """Errors writing to the sink reach the caller unchanged."""

    sink = StringIO()
    sink.close()

    with pytest.raises(ValueError, match=r"closed file"):
        generate_template(Configuration, sink)
