# =============================================================
#  config_keeper/loader.py
# =============================================================
"""Entry point: pick a backend by file extension and load a model.

.. code-block:: python

    cfg = config_keeper.load("server.yaml", ServerCfg)
    cfg.port = 9090
    cfg.save()

    cfg = config_keeper.from_path("server.toml").without_comments().load(ServerCfg)
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Generic, Optional, TypeVar, Union

from .delegate import PersistenceDelegate
from .fields import PersistedModel
from .registry import BackendRegistry
from .settings import KeeperSettings, SaveMode

__all__ = ["ConfigurationLoader", "LoadRequest", "load", "from_path"]

log = logging.getLogger(__name__)

T = TypeVar("T", bound=PersistedModel)
PathLike = Union[str, os.PathLike]


class ConfigurationLoader:
    """Owns one :class:`BackendRegistry` and hands out persistence delegates."""

    def __init__(
        self,
        registry: Optional[BackendRegistry] = None,
        settings: Optional[KeeperSettings] = None,
    ):
        self.registry = registry if registry is not None else BackendRegistry.with_defaults()
        self.settings = settings or KeeperSettings()

    def delegate_for(
        self, path: PathLike, mode: Union[SaveMode, str, None] = None
    ) -> PersistenceDelegate:
        # unknown extensions fail here, before the file is touched
        backend = self.registry.resolve_path(path)
        mode = SaveMode(mode) if mode is not None else self.settings.default_mode
        log.debug("Using %s backend for %s (%s)", backend.name, path, mode.value)
        return PersistenceDelegate(path, backend, mode=mode, settings=self.settings)

    def load(
        self,
        path: PathLike,
        factory: Callable[[], T],
        mode: Union[SaveMode, str, None] = None,
    ) -> T:
        """Load ``path`` into an instance built by ``factory`` (usually the model class)."""
        return self.delegate_for(path, mode).load_initial(factory)

    def from_path(self, path: PathLike) -> "LoadRequest":
        return LoadRequest(self, path)


class LoadRequest(Generic[T]):
    """Fluent form of :meth:`ConfigurationLoader.load`."""

    def __init__(self, loader: ConfigurationLoader, path: PathLike):
        self._loader = loader
        self._path = path
        self._mode: Optional[SaveMode] = None

    def with_comments(self) -> "LoadRequest[T]":
        return self.mode(SaveMode.DECORATED)

    def without_comments(self) -> "LoadRequest[T]":
        return self.mode(SaveMode.SIMPLE)

    def mode(self, mode: Union[SaveMode, str]) -> "LoadRequest[T]":
        self._mode = SaveMode(mode)
        return self

    def load(self, factory: Callable[[], T]) -> T:
        return self._loader.load(self._path, factory, self._mode)


# --------------------------------------------------------------------- #
# Module-level shortcuts (fresh default registry per call)
# --------------------------------------------------------------------- #

def load(
    path: PathLike,
    factory: Callable[[], T],
    mode: Union[SaveMode, str, None] = None,
) -> T:
    return ConfigurationLoader().load(path, factory, mode)


def from_path(path: PathLike) -> LoadRequest:
    return ConfigurationLoader().from_path(path)
