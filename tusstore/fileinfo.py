"""Description of one upload and its JSON encoding."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

# Characters escaped in the info document so that it is safe to embed in HTML.
_SAFE_ESCAPES = {
    ord("<"): "\\u003c",
    ord(">"): "\\u003e",
    ord("&"): "\\u0026",
    0x2028: "\\u2028",
    0x2029: "\\u2029",
}


def _sorted_map(mapping: dict[str, str] | None) -> dict[str, str] | None:
    if mapping is None:
        return None
    return dict(sorted(mapping.items()))


@dataclass
class FileInfo:
    """State and metadata of an upload."""

    id: str = ""
    size: int = 0
    size_is_deferred: bool = False
    offset: int = 0
    meta_data: dict[str, str] | None = None
    is_partial: bool = False
    is_final: bool = False
    partial_uploads: list[str] | None = None
    storage: dict[str, str] | None = None

    def to_json(self) -> bytes:
        """Encode as compact UTF-8 JSON with map keys in sorted order."""
        document = {
            "ID": self.id,
            "Size": self.size,
            "SizeIsDeferred": self.size_is_deferred,
            "Offset": self.offset,
            "MetaData": _sorted_map(self.meta_data),
            "IsPartial": self.is_partial,
            "IsFinal": self.is_final,
            "PartialUploads": self.partial_uploads,
            "Storage": _sorted_map(self.storage),
        }
        text = json.dumps(document, ensure_ascii=False, separators=(",", ":"))
        return text.translate(_SAFE_ESCAPES).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes | str) -> FileInfo:
        """Decode an info document; missing fields take their defaults."""
        document: Any = json.loads(data)
        if not isinstance(document, dict):
            raise ValueError("upload info must be a JSON object")

        def optional(key: str, kind: type) -> Any:
            value = document.get(key)
            return None if value is None else kind(value)

        return cls(
            id=document.get("ID") or "",
            size=int(document.get("Size") or 0),
            size_is_deferred=bool(document.get("SizeIsDeferred", False)),
            offset=int(document.get("Offset") or 0),
            meta_data=optional("MetaData", dict),
            is_partial=bool(document.get("IsPartial", False)),
            is_final=bool(document.get("IsFinal", False)),
            partial_uploads=optional("PartialUploads", list),
            storage=optional("Storage", dict),
        )