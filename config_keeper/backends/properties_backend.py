from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from ..document import EMPTY, Document, DocumentSection
from ..errors import DocumentDecodeError
from .base import MISSING, DocumentBackend, Spacer, comment_lines

__all__ = ["PropertiesBackend"]

_WS = " \t\f"
_SEPARATORS = "=:" + _WS
_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


# ------------------------------------------------------------------
# reading
# ------------------------------------------------------------------

def _continues(line: str) -> bool:
    trailing = len(line) - len(line.rstrip("\\"))
    return trailing % 2 == 1


def _logical_lines(text: str) -> Iterator[str]:
    pending = None
    for raw in text.splitlines():
        line = raw.lstrip(_WS)
        if pending is None and (not line or line[0] in "#!"):
            continue
        if _continues(line):
            pending = (pending or "") + line[:-1]
            continue
        yield (pending or "") + line
        pending = None
    if pending is not None:
        yield pending


def _unescape(text: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch != "\\":
            out.append(ch)
            i += 1
            continue
        if i + 1 >= len(text):
            break
        nxt = text[i + 1]
        if nxt == "u":
            code = text[i + 2 : i + 6]
            if len(code) != 4:
                raise DocumentDecodeError(f"Malformed \\uXXXX escape: '\\u{code}'")
            try:
                out.append(chr(int(code, 16)))
            except ValueError as exc:
                raise DocumentDecodeError(f"Malformed \\uXXXX escape: '\\u{code}'") from exc
            i += 6
            continue
        out.append(_ESCAPES.get(nxt, nxt))
        i += 2
    return "".join(out)


def _split_entry(line: str) -> Tuple[str, str]:
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == "\\":
            i += 2
            continue
        if ch in _SEPARATORS:
            break
        i += 1
    key, rest = line[:i], line[i:].lstrip(_WS)
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(_WS)
    return _unescape(key), rest


def _parse_value(raw: str) -> Any:
    text = _unescape(raw)
    # a bare leading bracket opens JSON; an escaped one (\[) is plain text
    if raw[:1] in ("[", "{"):
        try:
            return json.loads(text)
        except ValueError:
            return text
    return text


def _unflatten(flat: Mapping[str, Any]) -> Dict[str, Any]:
    tree: Dict[str, Any] = {}
    for dotted, value in flat.items():
        *parents, leaf = dotted.split(".")
        node = tree
        for part in parents:
            node = node.setdefault(part, {})
            if not isinstance(node, dict):
                break
        else:
            node.setdefault(leaf, value)
    return tree

# ------------------------------------------------------------------
# writing
# ------------------------------------------------------------------

def _escape(text: str, *, key: bool) -> str:
    text = text.replace("\\", "\\\\")
    for raw, esc in (("\t", "\\t"), ("\n", "\\n"), ("\r", "\\r"), ("\f", "\\f")):
        text = text.replace(raw, esc)
    if key:
        for ch in " :=#!":
            text = text.replace(ch, "\\" + ch)
    elif text.startswith(" "):
        text = "\\" + text
    return text


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return _escape(json.dumps(value, ensure_ascii=False), key=False)
    text = _escape(str(value), key=False)
    if text[:1] in ("[", "{"):
        # plain text, not JSON
        text = "\\" + text
    return text


def _flatten(key: str, value: Any) -> Iterator[Tuple[str, Any]]:
    if value is None:
        return
    if isinstance(value, dict) and value:
        for sub_key, sub_value in value.items():
            yield from _flatten(f"{key}.{sub_key}", sub_value)
        return
    yield key, value


def _line(key: str, value: Any) -> str:
    return f"{_escape(key, key=True)}={_format_value(value)}"


class PropertiesBackend(DocumentBackend):
    """``.properties`` files in the Java properties grammar.

    Sections are expressed with dotted keys (``database.port=5432``). Values
    decode as strings, apart from JSON lists and mappings; fields reach their
    declared type through validation. Mapping-typed fields are written as one
    JSON value, so their own keys may contain dots.
    """

    name = "properties"
    extensions = ("properties",)

    def decode(self, text: str) -> Any:
        entries: Dict[str, Any] = {}
        for line in _logical_lines(text):
            key, raw = _split_entry(line)
            entries[key] = _parse_value(raw)
        return entries if entries else EMPTY

    def encode_simple(self, tree: Mapping[str, Any]) -> str:
        """Encode a bare value tree; every non-empty mapping becomes dotted keys."""
        lines = [_line(k, v) for key, value in tree.items() for k, v in _flatten(key, value)]
        return "\n".join(lines) + "\n" if lines else ""

    def encode_decorated(self, document: Document) -> str:
        return self.encode(document, decorated=True)

    def encode(self, document: Document, *, decorated: bool) -> str:
        lines = comment_lines(document.header) if decorated else []
        if lines:
            lines.append("")
        self._write_section(document.root, "", lines, decorated)
        return "\n".join(lines).rstrip("\n") + "\n" if lines else ""

    def _write_section(
        self,
        section: DocumentSection,
        prefix: str,
        out: List[str],
        decorated: bool,
        spacer: Optional[Spacer] = None,
    ) -> None:
        spacer = spacer or Spacer()
        for entry in section.entries():
            if isinstance(entry, DocumentSection):
                if decorated:
                    out.extend(spacer.lead(entry, force_blank=True))
                self._write_section(entry, f"{prefix}{entry.key}.", out, decorated, Spacer())
                continue
            if decorated:
                out.extend(spacer.lead(entry))
            if entry.value is not None:
                out.append(_line(prefix + entry.key, entry.value))

    # ------------ flat document navigation ----------------------------- #

    @staticmethod
    def _with_prefix(tree: Mapping[str, Any], key: str) -> Dict[str, Any]:
        prefix = key + "."
        return {k[len(prefix):]: v for k, v in tree.items() if k.startswith(prefix)}

    def lookup(self, tree: Mapping[str, Any], key: str) -> Any:
        if key in tree:
            return tree[key]
        nested = self._with_prefix(tree, key)
        return _unflatten(nested) if nested else MISSING

    def subtree(self, tree: Mapping[str, Any], key: str) -> Any:
        if key in tree:
            return tree[key]
        nested = self._with_prefix(tree, key)
        return nested if nested else MISSING
