from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "EMPTY",
    "ValueTree",
    "ConfigOption",
    "DocumentSection",
    "Document",
]


class _Empty:
    """Marker returned by a backend for a document without any data."""

    _instance: Optional["_Empty"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "EMPTY"

    def __bool__(self) -> bool:
        return False


EMPTY = _Empty()

ValueTree = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]


class ConfigOption(BaseModel):
    """One key of a decorated save: current value plus its documentation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    key: str
    value: Any = None
    comments: Tuple[str, ...] = ()
    group: Tuple[str, ...] = ()


class DocumentSection(BaseModel):
    """A mapping level of a decorated save (the root or a nested section)."""

    key: Optional[str] = None
    comments: Tuple[str, ...] = ()
    group: Tuple[str, ...] = ()
    options: List[ConfigOption] = Field(default_factory=list)
    sections: List["DocumentSection"] = Field(default_factory=list)

    def entries(self) -> List[Union[ConfigOption, "DocumentSection"]]:
        """Options followed by sections, the order every backend writes them in."""
        return [*self.options, *self.sections]

    def to_tree(self) -> Dict[str, Any]:
        tree: Dict[str, Any] = {opt.key: opt.value for opt in self.options}
        for sec in self.sections:
            tree[sec.key] = sec.to_tree()
        return tree


class Document(BaseModel):
    header: Tuple[str, ...] = ()
    root: DocumentSection = Field(default_factory=DocumentSection)

    def to_tree(self) -> Dict[str, Any]:
        return self.root.to_tree()


DocumentSection.model_rebuild()
