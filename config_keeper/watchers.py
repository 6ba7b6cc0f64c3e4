from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Dict, Set, Tuple

from watchfiles import Change, watch

from .errors import ConfigurationError
from .fields import PersistedModel

log = logging.getLogger(__name__)


def _normalize_path(path: Path) -> str:
    """Return a resolved, case-normalized path usable as a dict key.

    Falls back to plain normalization when the path cannot be resolved.
    """
    try:
        return os.path.normcase(str(path.resolve()))
    except (OSError, ValueError) as e:
        log.warning("Failed to normalize path %s: %s", path, e)
        return os.path.normcase(str(path))


def _reload_events() -> Set[Change]:
    events = {Change.modified, Change.added}
    # newer watchfiles releases report atomic renames separately
    moved = getattr(Change, "moved", None) or getattr(Change, "move", None)
    if moved is not None:
        events.add(moved)
    return events


def watch_and_reload(
    *configs: PersistedModel,
    debounce: int = 500,
) -> Tuple[threading.Thread, threading.Event]:
    """Watch the files behind loaded configs and reload them on change.

    This helper starts a **daemon** thread that monitors the on-disk files
    of the given instances. When one of those files is written (including
    the temp-file-and-rename pattern used by :meth:`PersistedModel.save` and
    most editors), ``instance.reload()`` is called so the application sees
    the new values.

    Parameters
    ----------
    *configs : PersistedModel
        Instances obtained through :func:`config_keeper.load`. Instances that
        were never loaded are skipped.
    debounce : int, default ``500``
        Milliseconds to wait after the *first* event in a burst before the
        event set is yielded (passed straight to :func:`watchfiles.watch`).

    Returns
    -------
    (thread, stop_event)
        The background watcher thread *and* an :class:`threading.Event` that
        stops it.

    Reloads run on the watcher thread; serialize your own access to the
    watched instances.
    """
    stop_event = threading.Event()

    file_map: Dict[str, PersistedModel] = {}
    watch_directories: Set[Path] = set()
    for config in configs:
        if config.file_path is None:
            log.debug("Skipping %s: not loaded from a file", type(config).__name__)
            continue
        file_path = config.file_path.resolve()
        file_map[_normalize_path(file_path)] = config
        watch_directories.add(file_path.parent)
        log.debug("Watching %s at %s", type(config).__name__, file_path)

    def _watcher_loop() -> None:
        if not watch_directories:
            log.debug("No directories to watch, exiting watcher loop")
            return

        reload_events = _reload_events()
        try:
            for change_batch in watch(*watch_directories, debounce=debounce, stop_event=stop_event):
                if stop_event.is_set():
                    break
                log.debug("File changes detected: %s", change_batch)

                affected: Dict[int, PersistedModel] = {}
                for change_type, changed_path in change_batch:
                    if change_type not in reload_events:
                        continue
                    config = file_map.get(_normalize_path(Path(changed_path)))
                    if config is not None:
                        affected[id(config)] = config

                for config in affected.values():
                    _reload(config)
        except Exception as e:
            log.error("File watcher loop failed: %s", e, exc_info=True)
        finally:
            log.debug("File watcher loop exiting")

    def _reload(config: PersistedModel) -> None:
        log.debug("Reloading %s from %s", type(config).__name__, config.file_path)
        try:
            config.reload()
        except ConfigurationError as e:
            log.warning("Reloading %s failed: %s", config.file_path, e, exc_info=True)

    thread = threading.Thread(target=_watcher_loop, daemon=True, name="ConfigWatcher")
    thread.start()

    log.debug("Started file watcher thread: %s", thread.name)
    return thread, stop_event


__all__ = ["watch_and_reload"]
