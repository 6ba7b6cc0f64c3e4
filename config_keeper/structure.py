# =============================================================
#  config_keeper/structure.py
#  Field layout of persisted models
# =============================================================
"""Describe which fields of a model are persisted, under which keys.

:func:`describe` walks a model's class hierarchy (ancestors first) and returns
one :class:`FieldDescriptor` per persisted field. Only fields declared through
:func:`~config_keeper.fields.ConfigField` carry key metadata; everything else
(plain fields, ``exclude=True`` fields, class variables, private attributes)
is left out.
"""

from __future__ import annotations

import collections.abc as cabc
import functools
from enum import Enum
from typing import Any, List, Optional, Tuple, Type, get_origin

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings

from .coercion import NumericKind, _unwrap_optional, coerce, numeric_kind_of
from .errors import ConfigurationError
from .fields import COMMENT, COMMENT_SECTION, KEY, SECTION, PersistedModel

__all__ = [
    "TypeTag",
    "FieldDescriptor",
    "describe",
    "non_section_fields",
    "section_fields",
    "is_structured",
]

_ROOTS = (BaseModel, PersistedModel, BaseSettings)


class TypeTag(str, Enum):
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    STRING = "string"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    OBJECT = "object"
    OTHER = "other"


class FieldDescriptor(BaseModel):
    """Format-neutral view of one persisted field."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    key: str
    annotation: Any = None
    type_tag: TypeTag = TypeTag.OTHER
    numeric_kind: Optional[NumericKind] = None
    comments: Tuple[str, ...] = ()
    group: Tuple[str, ...] = ()
    is_section: bool = False
    section_key: Optional[str] = None
    adapter: Any = Field(default=None, repr=False, exclude=True)

    @property
    def document_key(self) -> str:
        """Key under which the field appears in the document."""
        return self.section_key if self.is_section else self.key

    def convert(self, raw: Any) -> Any:
        """Coerce and validate a decoded value into the declared type.

        Raises :class:`pydantic.ValidationError` (a ``ValueError``) when the
        value does not fit.
        """
        value = coerce(raw, self.numeric_kind)
        if self.adapter is not None:
            value = self.adapter.validate_python(value)
            # validation may have produced a number from text
            value = coerce(value, self.numeric_kind)
        return value


# ------------------------------------------------------------------
# helpers
# ------------------------------------------------------------------

def _type_tag(annotation: Any, kind: Optional[NumericKind]) -> TypeTag:
    tp = _unwrap_optional(annotation)
    origin = get_origin(tp) or tp
    if not isinstance(origin, type):
        return TypeTag.OTHER
    if issubclass(origin, bool):
        return TypeTag.BOOLEAN
    if kind is not None:
        return TypeTag.NUMERIC
    if issubclass(origin, str):
        return TypeTag.STRING
    if issubclass(origin, BaseModel):
        return TypeTag.OBJECT
    if issubclass(origin, cabc.Mapping):
        return TypeTag.MAPPING
    if issubclass(origin, (cabc.Sequence, cabc.Set)) and not issubclass(origin, (bytes, bytearray)):
        return TypeTag.SEQUENCE
    return TypeTag.OTHER


def _extra(info: FieldInfo) -> dict:
    extra = info.json_schema_extra
    return extra if isinstance(extra, dict) else {}


def _hierarchy_field_names(model_cls: Type[BaseModel]) -> List[str]:
    names: List[str] = []
    for klass in reversed(model_cls.__mro__):
        if not isinstance(klass, type) or not issubclass(klass, BaseModel) or klass in _ROOTS:
            continue
        for name in klass.model_fields:
            if name not in names:
                names.append(name)
    return names


def _descriptor(model_cls: Type[BaseModel], name: str, info: FieldInfo) -> FieldDescriptor:
    extra = _extra(info)
    key = extra.get(KEY) or name
    kind = numeric_kind_of(info.annotation, info.metadata)
    tag = _type_tag(info.annotation, kind)

    is_section = SECTION in extra
    section_key = None
    if is_section:
        if tag is not TypeTag.OBJECT:
            raise TypeError(
                f"{model_cls.__name__}.{name} is a section but is not typed as a pydantic model"
            )
        section_key = extra.get(SECTION) or key

    return FieldDescriptor(
        name=name,
        key=key,
        annotation=info.annotation,
        type_tag=tag,
        numeric_kind=kind,
        comments=tuple(extra.get(COMMENT) or ()),
        group=tuple(extra.get(COMMENT_SECTION) or ()),
        is_section=is_section,
        section_key=section_key,
        adapter=TypeAdapter(info.rebuild_annotation()),
    )


# ------------------------------------------------------------------
# public API
# ------------------------------------------------------------------

@functools.lru_cache(maxsize=None)
def describe(model_cls: Type[BaseModel]) -> Tuple[FieldDescriptor, ...]:
    """Ordered persisted fields of ``model_cls``, ancestor fields first."""
    fields = model_cls.model_fields
    out: List[FieldDescriptor] = []
    seen = {}
    for name in _hierarchy_field_names(model_cls):
        info = fields.get(name)
        if info is None or info.exclude is True or KEY not in _extra(info):
            continue
        desc = _descriptor(model_cls, name, info)
        clash = seen.get(desc.document_key)
        if clash is not None:
            raise ConfigurationError(
                f"{model_cls.__name__}: fields '{clash}' and '{name}' both persist "
                f"under the key '{desc.document_key}'"
            )
        seen[desc.document_key] = name
        out.append(desc)
    return tuple(out)


def non_section_fields(model_cls: Type[BaseModel]) -> Tuple[FieldDescriptor, ...]:
    return tuple(d for d in describe(model_cls) if not d.is_section)


def section_fields(model_cls: Type[BaseModel]) -> Tuple[FieldDescriptor, ...]:
    return tuple(d for d in describe(model_cls) if d.is_section)


def is_structured(value: Any) -> bool:
    """True when ``value`` is a model with persisted fields of its own.

    Sections holding anything else are saved and loaded as one opaque value.
    """
    return isinstance(value, BaseModel) and bool(describe(type(value)))
