# =============================================================
#  config_keeper/delegate.py
# =============================================================
"""Load / save / reload lifecycle of one configuration file.

A :class:`PersistenceDelegate` ties a file path to a
:class:`~config_keeper.backends.DocumentBackend` and moves values between the
file and a :class:`~config_keeper.fields.PersistedModel`:

* **load** - missing file: defaults are written out. Empty file: defaults are
  kept and the file is left alone. Unreadable file: a fresh default instance
  is returned and the file is left alone. One bad field only costs that field.
* **save** - the document is written to a temporary file next to the target
  and moved over it with :func:`os.replace`, so the target is either the old
  or the new document, never a partial one.
* **reload** - values are read into a copy first and only copied onto the live
  instance once the whole document was read.

None of this is thread-safe; serialize calls on the same instance yourself.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Generic, Mapping, Optional, Tuple, TypeVar, Union

from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from .backends import MISSING, DocumentBackend
from .document import EMPTY, ConfigOption, Document, DocumentSection
from .errors import ConfigurationError
from .fields import PersistedModel, header_lines, post_load_hooks
from .settings import KeeperSettings, SaveMode
from .structure import FieldDescriptor, describe, is_structured, non_section_fields, section_fields

__all__ = ["PersistenceDelegate"]

log = logging.getLogger(__name__)

T = TypeVar("T", bound=PersistedModel)

# failures that make a document unusable as a whole
_LOAD_ERRORS = (ConfigurationError, OSError, ValueError, TypeError)
# failures that only cost one field
_FIELD_ERRORS = (ValueError, TypeError, AttributeError)


def _discard(tmp_path: Optional[str]) -> None:
    if tmp_path and os.path.exists(tmp_path):
        with contextlib.suppress(OSError):
            os.remove(tmp_path)


class PersistenceDelegate(Generic[T]):
    """
    Persistence of one configuration file in one format.

    Parameters
    ----------
    file_path : path-like
        Target file. Parent directories are created on save.
    backend : DocumentBackend
        Format used to decode and encode the file.
    mode : SaveMode, default ``SaveMode.DECORATED``
        ``simple`` writes values only; ``decorated`` adds the class header,
        field comments and comment groups.
    """

    def __init__(
        self,
        file_path: Union[str, os.PathLike],
        backend: DocumentBackend,
        *,
        mode: Union[SaveMode, str] = SaveMode.DECORATED,
        settings: Optional[KeeperSettings] = None,
    ):
        self.file_path = Path(file_path)
        self.backend = backend
        self.mode = SaveMode(mode)
        self.settings = settings or KeeperSettings()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.file_path)!r}, {self.backend.name}, {self.mode.value})"

    def __deepcopy__(self, memo: dict) -> "PersistenceDelegate[T]":
        # copies of a loaded model keep pointing at the same file
        return self

    # ------------ lifecycle ------------------------------------------- #

    def load_initial(self, factory: Callable[[], T]) -> T:
        """Return an instance filled from the file, or a default one."""
        path = self.file_path
        if not path.exists():
            log.info("Config file '%s' not found. Creating it with defaults.", path)
            instance = self._new(factory)
            self.save(instance)
            return self._finish(instance)

        instance = self._new(factory)
        try:
            tree = self._read()
            if tree is EMPTY:
                log.info("Config file '%s' is empty. Using defaults.", path)
                instance._attach(self)
                return instance
            self._populate(instance, tree)
        except _LOAD_ERRORS as exc:
            log.warning("Could not load '%s'; using defaults.  (%s)", path, exc, exc_info=True)
            instance = self._new(factory)
            instance._attach(self)
            return instance

        log.info("Configuration loaded from %s", path)
        return self._finish(instance)

    def save(self, instance: T) -> None:
        """Atomically replace the file with the current state of ``instance``."""
        path = self.file_path
        tmp_path: Optional[str] = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=path.parent, prefix=f".{path.name}.", suffix=self.settings.temp_suffix
            )
            with os.fdopen(fd, "w", encoding=self.settings.encoding, newline="\n") as fh:
                fh.write(self.encode(instance))
                if self.settings.fsync:
                    fh.flush()
                    os.fsync(fh.fileno())
            if path.exists():
                shutil.copymode(path, tmp_path)
            os.replace(tmp_path, path)
        except Exception as exc:
            raise ConfigurationError(f"Failed to save configuration to {path}") from exc
        finally:
            _discard(tmp_path)
        log.info("Configuration saved to %s", path)

    def reload(self, instance: T) -> None:
        """Overwrite ``instance`` with the values currently in the file."""
        path = self.file_path
        if not path.exists():
            log.info("Config file '%s' not found on reload. Current values remain.", path)
            return

        staged = instance.model_copy(deep=True)
        try:
            tree = self._read()
            if tree is EMPTY:
                log.info("Config file '%s' is empty on reload. Current values remain.", path)
                return
            self._populate(staged, tree)
        except _LOAD_ERRORS as exc:
            log.warning(
                "Could not reload '%s'; current values remain.  (%s)", path, exc, exc_info=True
            )
            return

        self._transfer(staged, instance)
        log.info("Configuration reloaded from %s", path)
        self._run_post_load(instance)

    # ------------ encoding -------------------------------------------- #

    def encode(self, instance: BaseModel) -> str:
        return self.backend.encode(
            self.build_document(instance), decorated=self.mode is SaveMode.DECORATED
        )

    def build_document(self, instance: BaseModel) -> Document:
        return Document(header=header_lines(type(instance)), root=self._section(instance))

    def _section(
        self,
        obj: BaseModel,
        key: Optional[str] = None,
        desc: Optional[FieldDescriptor] = None,
    ) -> DocumentSection:
        section = DocumentSection(
            key=key,
            comments=desc.comments if desc else (),
            group=desc.group if desc else (),
        )
        for field in non_section_fields(type(obj)):
            section.options.append(self._option(field, getattr(obj, field.name)))
        for field in section_fields(type(obj)):
            value = getattr(obj, field.name)
            if is_structured(value):
                section.sections.append(self._section(value, field.section_key, field))
            else:
                section.options.append(self._option(field, value))
        return section

    @staticmethod
    def _option(desc: FieldDescriptor, value: Any) -> ConfigOption:
        return ConfigOption(
            key=desc.document_key,
            value=to_jsonable_python(value),
            comments=desc.comments,
            group=desc.group,
        )

    # ------------ decoding -------------------------------------------- #

    def _read(self) -> Any:
        text = self.file_path.read_text(encoding=self.settings.encoding)
        return self.backend.decode(text)

    def _populate(self, target: BaseModel, tree: Any, trail: Tuple[str, ...] = ()) -> None:
        if not isinstance(tree, Mapping):
            where = ".".join(trail) or "<root>"
            raise ConfigurationError(
                f"Expected a mapping at '{where}' in {self.file_path}, found {type(tree).__name__}"
            )

        model_cls = type(target)
        for desc in non_section_fields(model_cls):
            raw = self.backend.lookup(tree, desc.key)
            if raw is not MISSING:
                self._assign(target, desc, raw, trail)

        for desc in section_fields(model_cls):
            current = getattr(target, desc.name, None)
            if is_structured(current):
                sub = self.backend.subtree(tree, desc.section_key)
                if sub is MISSING or sub is None:
                    continue
                try:
                    self._populate(current, sub, trail + (desc.section_key,))
                except ConfigurationError as exc:
                    log.warning("Skipping section '%s': %s", desc.section_key, exc)
            else:
                raw = self.backend.lookup(tree, desc.section_key)
                if raw is not MISSING and raw is not None:
                    self._assign(target, desc, raw, trail)

    def _assign(self, target: BaseModel, desc: FieldDescriptor, raw: Any, trail: Tuple[str, ...]) -> None:
        try:
            setattr(target, desc.name, desc.convert(raw))
        except _FIELD_ERRORS as exc:
            dotted = ".".join(trail + (desc.document_key,))
            log.warning("Skipping field '%s' in %s: %s", dotted, self.file_path, exc)

    def _transfer(self, source: BaseModel, target: BaseModel) -> None:
        for desc in describe(type(target)):
            new = getattr(source, desc.name)
            if desc.is_section:
                current = getattr(target, desc.name)
                if is_structured(current) and type(new) is type(current):
                    self._transfer(new, current)
                    continue
            setattr(target, desc.name, new)

    # ------------ instance handling ----------------------------------- #

    @staticmethod
    def _new(factory: Callable[[], T]) -> T:
        instance = factory()
        if not isinstance(instance, PersistedModel):
            raise TypeError(
                f"default factory must return a PersistedModel, got {type(instance).__name__}"
            )
        return instance

    def _finish(self, instance: T) -> T:
        instance._attach(self)
        self._run_post_load(instance)
        return instance

    @staticmethod
    def _run_post_load(instance: BaseModel) -> None:
        for name in post_load_hooks(type(instance)):
            try:
                getattr(instance, name)()
            except Exception as exc:
                raise ConfigurationError(f"Failed to invoke post-load hook '{name}'") from exc
