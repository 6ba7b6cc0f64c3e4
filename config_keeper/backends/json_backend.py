from __future__ import annotations

import json
from typing import Any, Mapping

from pydantic_core import to_jsonable_python

from ..document import EMPTY, Document
from ..errors import DocumentDecodeError
from .base import DocumentBackend, is_empty_text

__all__ = ["JsonBackend"]


class JsonBackend(DocumentBackend):
    """JSON documents. JSON has no comments, so decorated output equals simple."""

    name = "json"
    extensions = ("json",)

    def __init__(self, indent: int = 4):
        self.indent = indent

    def decode(self, text: str) -> Any:
        if is_empty_text(text):
            return EMPTY
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise DocumentDecodeError(f"Invalid JSON: {exc}") from exc

    def encode_simple(self, tree: Mapping[str, Any]) -> str:
        return (
            json.dumps(tree, indent=self.indent, ensure_ascii=False, default=to_jsonable_python)
            + "\n"
        )

    def encode_decorated(self, document: Document) -> str:
        return self.encode_simple(document.to_tree())
