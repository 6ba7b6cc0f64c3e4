from __future__ import annotations

from typing import Any, List, Mapping

import yaml

from ..document import EMPTY, ConfigOption, Document, DocumentSection
from ..errors import DocumentDecodeError
from .base import DocumentBackend, Spacer, comment_lines, is_empty_text

__all__ = ["YamlBackend"]

_DUMP_OPTS = dict(
    sort_keys=False,
    allow_unicode=True,
    default_flow_style=False,
    width=4096,
)
_INDENT = "  "


def _dump_entry(key: str, value: Any) -> List[str]:
    return yaml.safe_dump({key: value}, **_DUMP_OPTS).rstrip("\n").splitlines()


def _key_line(key: str) -> str:
    # "key: {}" -> "key:"
    rendered = _dump_entry(key, {})[0]
    return rendered[: -len(" {}")]


class YamlBackend(DocumentBackend):
    """YAML documents through PyYAML's safe loader/dumper.

    Decorated output is laid out by hand so comments can sit above their keys;
    every value is still rendered by :func:`yaml.safe_dump`.
    """

    name = "yaml"
    extensions = ("yaml", "yml")

    def decode(self, text: str) -> Any:
        if is_empty_text(text):
            return EMPTY
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise DocumentDecodeError(f"Invalid YAML: {exc}") from exc
        # comment-only documents load as None
        return EMPTY if data is None else data

    def encode_simple(self, tree: Mapping[str, Any]) -> str:
        return yaml.safe_dump(dict(tree), **_DUMP_OPTS)

    def encode_decorated(self, document: Document) -> str:
        lines = comment_lines(document.header)
        if lines:
            lines.append("")
        body = self._section_lines(document.root, depth=0)
        if not body:
            body = ["{}"]
        lines.extend(body)
        return "\n".join(lines) + "\n"

    def _section_lines(self, section: DocumentSection, depth: int) -> List[str]:
        pad = _INDENT * depth
        spacer = Spacer()
        out: List[str] = []
        for entry in section.entries():
            nested = isinstance(entry, DocumentSection)
            out.extend(pad + line if line else line for line in spacer.lead(entry, force_blank=nested))
            if nested:
                inner = self._section_lines(entry, depth + 1)
                if inner:
                    out.append(pad + _key_line(entry.key))
                    out.extend(inner)
                else:
                    out.extend(pad + line for line in _dump_entry(entry.key, {}))
            else:
                out.extend(pad + line for line in self._option_lines(entry))
        return out

    @staticmethod
    def _option_lines(option: ConfigOption) -> List[str]:
        return _dump_entry(option.key, option.value)
