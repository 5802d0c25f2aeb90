"""Optional filesystem features and the set a filesystem declares."""

from __future__ import annotations

import enum
from collections.abc import Iterable

from alist_remote._errors import CapabilityNotSupported


class Capability(enum.Enum):
    """Optional features a filesystem may offer."""

    PURGE = "purge"
    COPY = "copy"
    MOVE = "move"
    DIR_MOVE = "dir_move"
    CAN_HAVE_EMPTY_DIRECTORIES = "can_have_empty_directories"


class CapabilitySet(frozenset):  # type: ignore[type-arg]
    """Features declared by a filesystem.

    A frozenset of :class:`Capability` members, so it supports ``in``,
    iteration and set algebra, plus :meth:`require` for guarding verbs.
    """

    def __new__(cls, capabilities: Iterable[Capability] = ()) -> CapabilitySet:
        caps = frozenset(capabilities)
        stray = [c for c in caps if not isinstance(c, Capability)]
        if stray:
            raise TypeError(f"Not capabilities: {stray!r}")
        return super().__new__(cls, caps)

    def supports(self, cap: Capability) -> bool:
        return cap in self

    def require(self, cap: Capability, *, backend: str = "") -> None:
        """Raise if ``cap`` is not declared.

        :raises CapabilityNotSupported: If the capability is missing.
        """
        if cap not in self:
            raise CapabilityNotSupported(
                f"Capability '{cap.value}' is not supported",
                capability=cap.value,
                backend=backend or None,
            )

    def __repr__(self) -> str:
        return f"CapabilitySet({{{', '.join(sorted(c.name for c in self))}}})"
