from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, List, Mapping, Sequence, Tuple, Union

from ..document import ConfigOption, Document, DocumentSection, ValueTree

__all__ = ["DocumentBackend", "MISSING", "Spacer", "comment_lines", "is_empty_text"]


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


def comment_lines(lines: Sequence[str], marker: str = "#") -> List[str]:
    return [f"{marker} {line}" if line else marker for line in lines]


class Spacer:
    """Lay out group headers, comments and blank lines ahead of entries.

    A blank line goes before every entry that starts a new comment group, is
    documented, or is forced (sections and tables); never before the first.
    """

    def __init__(self, marker: str = "#"):
        self.marker = marker
        self.last_group: Tuple[str, ...] = ()
        self.count = 0

    def lead(self, entry: Union[ConfigOption, DocumentSection], *, force_blank: bool = False) -> List[str]:
        out: List[str] = []
        new_group = bool(entry.group) and entry.group != self.last_group
        if entry.group:
            self.last_group = entry.group
        if self.count and (new_group or entry.comments or force_blank):
            out.append("")
        if new_group:
            out.extend(comment_lines(entry.group, self.marker))
        out.extend(comment_lines(entry.comments, self.marker))
        self.count += 1
        return out


class DocumentBackend(ABC):
    """Text format plugged into :class:`~config_keeper.delegate.PersistenceDelegate`.

    ``decode`` returns a value tree (or :data:`~config_keeper.document.EMPTY`
    for a document without data); the ``encode_*`` methods must keep mapping
    order.
    """

    name: ClassVar[str] = ""
    extensions: ClassVar[Tuple[str, ...]] = ()

    @abstractmethod
    def decode(self, text: str) -> Union[ValueTree, Any]:
        ...

    @abstractmethod
    def encode_simple(self, tree: Mapping[str, Any]) -> str:
        ...

    @abstractmethod
    def encode_decorated(self, document: Document) -> str:
        ...

    def encode(self, document: Document, *, decorated: bool) -> str:
        """Text of ``document``; the value tree alone unless ``decorated``."""
        if decorated:
            return self.encode_decorated(document)
        return self.encode_simple(document.to_tree())

    # ------------ document navigation ---------------------------------- #

    def lookup(self, tree: Mapping[str, Any], key: str) -> Any:
        """Raw value stored under ``key`` or :data:`MISSING`."""
        return tree[key] if key in tree else MISSING

    def subtree(self, tree: Mapping[str, Any], key: str) -> Any:
        """Sub-document of the section ``key`` or :data:`MISSING`."""
        return self.lookup(tree, key)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(extensions={self.extensions!r})"


def is_empty_text(text: str, comment_prefixes: Tuple[str, ...] = ()) -> bool:
    """True when ``text`` holds nothing but whitespace (and comment lines)."""
    for line in text.splitlines():
        stripped = line.strip()
        if stripped and not (comment_prefixes and stripped.startswith(comment_prefixes)):
            return False
    return True
