from __future__ import annotations

import json
import re
from typing import Any, List, Mapping, Sequence, Tuple

try:
    import tomli
except ImportError:  # pragma: no cover - python >= 3.11 without tomli
    import tomllib as tomli
import tomli_w

from ..document import EMPTY, ConfigOption, Document, DocumentSection
from ..errors import DocumentDecodeError
from .base import DocumentBackend, Spacer, comment_lines, is_empty_text

__all__ = ["TomlBackend"]

_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


def _drop_none(value: Any) -> Any:
    """TOML has no null: ``None`` entries are left out of tables and arrays."""
    if isinstance(value, Mapping):
        return {k: _drop_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_none(v) for v in value if v is not None]
    return value


def _quote_key(key: str) -> str:
    return key if _BARE_KEY.match(key) else json.dumps(key)


def _nest(path: Sequence[str], table: Mapping[str, Any]) -> Mapping[str, Any]:
    for part in reversed(path):
        table = {part: table}
    return table


class TomlBackend(DocumentBackend):
    """TOML documents: tomli (or :mod:`tomllib`) to read, tomli-w to write.

    Decorated output writes each table's plain keys first, then its sub-tables,
    then nested sections as ``[section]`` / ``[section.nested]`` tables.
    """

    name = "toml"
    extensions = ("toml",)

    def decode(self, text: str) -> Any:
        if is_empty_text(text, comment_prefixes=("#",)):
            return EMPTY
        try:
            return tomli.loads(text)
        except tomli.TOMLDecodeError as exc:
            raise DocumentDecodeError(f"Invalid TOML: {exc}") from exc

    def encode_simple(self, tree: Mapping[str, Any]) -> str:
        return tomli_w.dumps(_drop_none(tree))

    def encode_decorated(self, document: Document) -> str:
        lines = comment_lines(document.header)
        if lines:
            lines.append("")
        self._write_table(document.root, (), lines)
        return "\n".join(lines).rstrip("\n") + "\n"

    # ------------------------------------------------------------------ #

    def _write_table(self, section: DocumentSection, path: Tuple[str, ...], out: List[str]) -> None:
        spacer = Spacer()
        deferred: List[Tuple[ConfigOption, List[str]]] = []

        for option in section.options:
            if option.value is None:
                continue
            rendered = tomli_w.dumps({option.key: _drop_none(option.value)})
            if rendered.startswith("["):
                # a table or array of tables; must follow the plain keys
                deferred.append((option, self._table_chunk(path, option)))
                continue
            out.extend(spacer.lead(option))
            out.extend(rendered.rstrip("\n").splitlines())

        for option, chunk in deferred:
            self._blank(out)
            self._emit(out, spacer.lead(option))
            out.extend(chunk)

        for nested in section.sections:
            sub_path = path + (nested.key,)
            self._blank(out)
            self._emit(out, spacer.lead(nested))
            out.append("[" + ".".join(_quote_key(p) for p in sub_path) + "]")
            self._write_table(nested, sub_path, out)

    @staticmethod
    def _table_chunk(path: Tuple[str, ...], option: ConfigOption) -> List[str]:
        text = tomli_w.dumps(_nest(path, {option.key: _drop_none(option.value)}))
        return text.rstrip("\n").splitlines()

    @staticmethod
    def _emit(out: List[str], lead: List[str]) -> None:
        if lead and lead[0] == "" and (not out or out[-1] == ""):
            lead = lead[1:]
        out.extend(lead)

    @staticmethod
    def _blank(out: List[str]) -> None:
        if out and out[-1] != "":
            out.append("")
