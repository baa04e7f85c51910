from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

from exprsec.security.errors import ConfigurationError
from exprsec.security.root import RESERVED_NAMES


class BeanRegistry(Mapping[str, Any]):
    """
    Immutable name -> object registry, exposed to expressions by name.

        beans = BeanRegistry({"documentAccess": DocumentAccess(...)})
        # expression: "documentAccess.is_owner(authentication, document_id)"
    """

    def __init__(self, beans: Mapping[str, Any] | None = None) -> None:
        beans = dict(beans or {})
        clashes = sorted(set(beans) & RESERVED_NAMES)
        if clashes:
            raise ConfigurationError(f"Bean names clash with built-in expression names: {clashes}")
        for name in beans:
            if not name.isidentifier():
                raise ConfigurationError(f"Bean name {name!r} is not a valid identifier")
        self._beans = beans

    def __getitem__(self, name: str) -> Any:
        return self._beans[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._beans)

    def __len__(self) -> int:
        return len(self._beans)
