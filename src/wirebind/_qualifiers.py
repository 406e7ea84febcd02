from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Qualifier:
    """A structural tag narrowing which implementation satisfies a request.

    Two qualifiers are equal when their tag and attribute values are equal.
    Attributes are kept sorted by name, so keyword order never matters.
    """

    tag: str
    attributes: tuple[tuple[str, Any], ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.tag, str):
            msg = f"Qualifier tag must be a string, got {type(self.tag).__name__}"
            raise TypeError(msg)
        object.__setattr__(self, "attributes", tuple(sorted(self.attributes)))

    def __repr__(self) -> str:
        if not self.attributes:
            return f"@{self.tag}"
        attrs = ", ".join(f"{k}={v!r}" for k, v in self.attributes)
        return f"@{self.tag}({attrs})"


DEFAULT = Qualifier("default")
ANY = Qualifier("any")


def qualifier(tag: str, **attributes: Any) -> Qualifier:
    return Qualifier(tag, tuple(attributes.items()))


def named(value: str) -> Qualifier:
    return qualifier("named", value=value)


def normalize(qualifiers: Any) -> frozenset[Qualifier]:
    """Turn an optional iterable of qualifiers into a non-empty frozenset."""
    if not qualifiers:
        return frozenset({DEFAULT})
    result = frozenset(qualifiers)
    for q in result:
        if not isinstance(q, Qualifier):
            msg = f"Expected a Qualifier, got {q!r}"
            raise TypeError(msg)
    return result


def is_default(qualifiers: frozenset[Qualifier]) -> bool:
    return not qualifiers or qualifiers == {DEFAULT}


def specific(qualifiers: frozenset[Qualifier]) -> frozenset[Qualifier]:
    """Qualifiers other than DEFAULT and ANY."""
    return frozenset(q for q in qualifiers if q not in (DEFAULT, ANY))
