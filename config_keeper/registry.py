from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Iterator, List, Union

from .backends import DocumentBackend, default_backends
from .errors import UnsupportedFormatError

__all__ = ["BackendRegistry", "extension_of"]

log = logging.getLogger(__name__)


def extension_of(path: Union[str, os.PathLike]) -> str:
    """Text after the last ``.`` of the file name (the whole name without one)."""
    return Path(path).name.rpartition(".")[2]


class BackendRegistry:
    """Maps file extensions to document backends.

    Registries are plain instances: build one with :meth:`with_defaults`, add
    your own backends with :meth:`register`, and hand it to a
    :class:`~config_keeper.loader.ConfigurationLoader`.
    """

    def __init__(self, backends: Union[List[DocumentBackend], None] = None):
        self._backends: Dict[str, DocumentBackend] = {}
        for backend in backends or ():
            self.register(backend)

    @classmethod
    def with_defaults(cls) -> "BackendRegistry":
        return cls(default_backends())

    # ---------- registration ------------------------------------------ #

    def register(self, backend: DocumentBackend) -> DocumentBackend:
        if not backend.extensions:
            raise ValueError(f"{backend!r} declares no file extensions")
        for ext in backend.extensions:
            ext = ext.lower().lstrip(".")
            previous = self._backends.get(ext)
            if previous is not None and previous is not backend:
                log.debug("Extension '%s': %r replaces %r", ext, backend, previous)
            self._backends[ext] = backend
        return backend

    # ---------- lookup ------------------------------------------------ #

    def resolve(self, extension: str) -> DocumentBackend:
        backend = self._backends.get(extension.lower())
        if backend is None:
            raise UnsupportedFormatError(extension)
        return backend

    def resolve_path(self, path: Union[str, os.PathLike]) -> DocumentBackend:
        return self.resolve(extension_of(path))

    @property
    def extensions(self) -> List[str]:
        return sorted(self._backends)

    def __contains__(self, extension: str) -> bool:
        return extension.lower() in self._backends

    def __iter__(self) -> Iterator[DocumentBackend]:
        seen: List[DocumentBackend] = []
        for backend in self._backends.values():
            if not any(backend is s for s in seen):
                seen.append(backend)
        return iter(seen)
