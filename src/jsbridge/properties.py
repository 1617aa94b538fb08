"""Interned property names."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Atom:
    """Interned property name, valid within the Runtime that created it.

    Atoms compare by identity of the runtime and the interned id, so
    equality never needs the name text.
    """

    runtime_id: int
    id: int


@dataclass(frozen=True)
class PropertyName:
    """One entry of a property enumeration."""

    atom: Atom
    name: str

    def __str__(self) -> str:
        return self.name
