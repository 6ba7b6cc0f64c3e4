from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from pydantic.fields import PydanticUndefined

from .errors import NotLoadedError

if TYPE_CHECKING:  # pragma: no cover
    from .delegate import PersistenceDelegate

__all__ = [
    "PersistedModel",
    "ConfigField",
    "SectionField",
    "config_header",
    "post_load",
]

# keys stored in ``json_schema_extra``
KEY = "config_key"
COMMENT = "config_comment"
COMMENT_SECTION = "config_comment_section"
SECTION = "config_section"

HEADER_ATTR = "__config_header__"
POST_LOAD_ATTR = "__config_post_load__"

Lines = Union[str, Sequence[str], None]


def _lines(value: Lines) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return value.splitlines() or [""]
    out: List[str] = []
    for item in value:
        out.extend(str(item).splitlines() or [""])
    return out


def ConfigField(
    default: Any = PydanticUndefined,
    *,
    key: Optional[str] = None,
    comment: Lines = None,
    comment_section: Lines = None,
    section: Optional[str] = None,
    json_schema_extra: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
):
    """Wrapper around :func:`pydantic.Field` marking the field as persisted.

    Parameters
    ----------
    key : str, optional
        Name used in the file; the attribute name when empty or omitted.
    comment : str | list[str], optional
        Documentation lines written above the key in decorated files.
    comment_section : str | list[str], optional
        Header of a logical group of keys. A new group starts whenever this
        differs from the previous key's group.
    section : str, optional
        Persist the (model-typed) field as a nested section. ``""`` uses the
        resolved key as the section name.
    """

    extra = dict(json_schema_extra or {})
    extra[KEY] = key or ""
    if comment is not None:
        extra[COMMENT] = _lines(comment)
    if comment_section is not None:
        extra[COMMENT_SECTION] = _lines(comment_section)
    if section is not None:
        extra[SECTION] = section

    return Field(default, json_schema_extra=extra, **kwargs)


def SectionField(
    default_factory: Callable[[], Any],
    name: str = "",
    *,
    key: Optional[str] = None,
    comment: Lines = None,
    comment_section: Lines = None,
    **kwargs: Any,
):
    """Shorthand for a nested section built by ``default_factory``."""

    return ConfigField(
        key=key,
        comment=comment,
        comment_section=comment_section,
        section=name,
        default_factory=default_factory,
        **kwargs,
    )


def config_header(*lines: str):
    """Class decorator attaching the header comment of decorated files."""

    def decorator(cls: type) -> type:
        setattr(cls, HEADER_ATTR, tuple(_lines(list(lines))))
        return cls

    return decorator


def post_load(func: Callable) -> Callable:
    """Mark a zero-argument method to run after every successful load/reload."""
    setattr(func, POST_LOAD_ATTR, True)
    return func


def post_load_hooks(cls: type) -> List[str]:
    """Names of the ``@post_load`` methods of ``cls``, ancestors first."""
    names: List[str] = []
    for klass in reversed(cls.__mro__):
        for name, attr in vars(klass).items():
            if getattr(attr, POST_LOAD_ATTR, False) and name not in names:
                names.append(name)
    # an override without the decorator switches the hook off
    return [n for n in names if getattr(getattr(cls, n), POST_LOAD_ATTR, False)]


def header_lines(cls: type) -> Tuple[str, ...]:
    return tuple(getattr(cls, HEADER_ATTR, ()) or ())


class PersistedModel(BaseModel):
    """Root of every persisted configuration model.

    Instances obtained through :func:`config_keeper.load` carry the
    :class:`~config_keeper.delegate.PersistenceDelegate` that loaded them, so
    ``cfg.save()`` and ``cfg.reload()`` need no further arguments.
    """

    model_config = ConfigDict(
        extra="ignore",
        arbitrary_types_allowed=True,
        validate_default=True,
        validate_assignment=True,
    )

    _persistence: Optional["PersistenceDelegate"] = PrivateAttr(default=None)

    # ------------ persistence handle ---------------------------------- #

    @property
    def persistence(self) -> Optional["PersistenceDelegate"]:
        return self._persistence

    @property
    def file_path(self) -> Optional[Path]:
        return self._persistence.file_path if self._persistence else None

    def _attach(self, delegate: "PersistenceDelegate") -> None:
        self._persistence = delegate

    def _require_persistence(self, action: str) -> "PersistenceDelegate":
        if self._persistence is None:
            raise NotLoadedError(
                f"{type(self).__name__} was not properly initialized through a "
                f"configuration loader. Cannot {action}."
            )
        return self._persistence

    # ------------ public ---------------------------------------------- #

    def save(self) -> None:
        self._require_persistence("save").save(self)

    def reload(self) -> None:
        self._require_persistence("reload").reload(self)
