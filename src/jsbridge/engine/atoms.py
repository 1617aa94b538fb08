"""Interned property names, shared by every context of a runtime."""

from typing import Dict, List


class AtomTable:
    """Maps property-name strings to small integer ids and back.

    Atoms live as long as the runtime; ids are never reused.
    """

    def __init__(self):
        self._ids: Dict[str, int] = {}
        self._names: List[str] = []

    def intern(self, name: str) -> int:
        atom_id = self._ids.get(name)
        if atom_id is None:
            atom_id = len(self._names)
            self._ids[name] = atom_id
            self._names.append(name)
        return atom_id

    def name(self, atom_id: int) -> str:
        if not 0 <= atom_id < len(self._names):
            raise KeyError(atom_id)
        return self._names[atom_id]

    def __contains__(self, name: str) -> bool:
        return name in self._ids

    def __len__(self) -> int:
        return len(self._names)
