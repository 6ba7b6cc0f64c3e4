# =============================================================
#  config_keeper/__init__.py
# =============================================================
"""
Config-Keeper
=============

Persist annotated **pydantic v2** models to JSON, YAML, TOML or
``.properties`` files, with comments.

Main ideas
~~~~~~~~~~
* A configuration is a :class:`PersistedModel`. Fields declared with
  :func:`ConfigField` are persisted under their key (the attribute name unless
  ``key=`` says otherwise); ``comment=`` lines are written above the key and
  ``comment_section=`` starts a new group of keys. Plain pydantic fields stay
  in memory only.
* Nested models declared with :func:`SectionField` become nested sections
  (``[database]`` in TOML, ``database.port=...`` in properties files).
* The backend follows the file extension. A missing file is created from the
  defaults, an empty or broken one leaves the defaults in place and is never
  overwritten behind your back. Every save goes through a temporary file and
  an atomic rename.

Quick example
~~~~~~~~~~~~~
```python
import config_keeper as ck

class Database(ck.PersistedModel):
    host: str = ck.ConfigField("localhost", comment="Database host")
    port: ck.Int32 = ck.ConfigField(5432)

@ck.config_header("Server configuration")
class ServerCfg(ck.PersistedModel):
    name: str = ck.ConfigField("TestServer", comment_section="General")
    port: int = ck.ConfigField(8080)
    database: Database = ck.SectionField(Database)

cfg = ck.load("server.yaml", ServerCfg)   # creates the file on first run
cfg.port = 9090
cfg.save()                               # atomic, comments included
cfg.reload()                             # picks up hand edits
```
"""

from __future__ import annotations

from importlib import metadata as _meta
import logging as _logging

# --------------------------------------------------------------------- #
# Version
# --------------------------------------------------------------------- #
try:  # When installed (pip/poetry)
    __version__: str = _meta.version("config-keeper")
except _meta.PackageNotFoundError:  # Editable checkout / source tree
    __version__ = "0.1.0"

# --------------------------------------------------------------------- #
# Logging
# --------------------------------------------------------------------- #
_logging.getLogger(__name__).addHandler(_logging.NullHandler())  # *never* touch the root logger.

# --------------------------------------------------------------------- #
# Public re-exports
# --------------------------------------------------------------------- #
from .errors import (  # noqa: E402
    ConfigurationError,
    DocumentDecodeError,
    NotLoadedError,
    UnsupportedFormatError,
)
from .settings import KeeperSettings, SaveMode  # noqa: E402
from .coercion import (  # noqa: E402
    Float32,
    Float64,
    Int8,
    Int16,
    Int32,
    Int64,
    NumericKind,
    coerce,
)
from .fields import ConfigField, PersistedModel, SectionField, config_header, post_load  # noqa: E402
from .structure import FieldDescriptor, TypeTag, describe  # noqa: E402
from .document import EMPTY  # noqa: E402
from .backends import (  # noqa: E402
    DocumentBackend,
    JsonBackend,
    PropertiesBackend,
    TomlBackend,
    YamlBackend,
)
from .registry import BackendRegistry  # noqa: E402
from .delegate import PersistenceDelegate  # noqa: E402
from .loader import ConfigurationLoader, from_path, load  # noqa: E402
from .watchers import watch_and_reload  # noqa: E402

__all__ = [
    "PersistedModel",
    "ConfigField",
    "SectionField",
    "config_header",
    "post_load",
    "NumericKind",
    "Int8",
    "Int16",
    "Int32",
    "Int64",
    "Float32",
    "Float64",
    "coerce",
    "describe",
    "FieldDescriptor",
    "TypeTag",
    "EMPTY",
    "DocumentBackend",
    "JsonBackend",
    "YamlBackend",
    "TomlBackend",
    "PropertiesBackend",
    "BackendRegistry",
    "PersistenceDelegate",
    "ConfigurationLoader",
    "load",
    "from_path",
    "SaveMode",
    "KeeperSettings",
    "ConfigurationError",
    "UnsupportedFormatError",
    "NotLoadedError",
    "DocumentDecodeError",
    "watch_and_reload",
]
