"""Built-in document backends, one per supported file format."""

from .base import MISSING, DocumentBackend
from .json_backend import JsonBackend
from .properties_backend import PropertiesBackend
from .toml_backend import TomlBackend
from .yaml_backend import YamlBackend

__all__ = [
    "MISSING",
    "DocumentBackend",
    "JsonBackend",
    "YamlBackend",
    "TomlBackend",
    "PropertiesBackend",
    "default_backends",
]


def default_backends():
    return [JsonBackend(), YamlBackend(), TomlBackend(), PropertiesBackend()]
