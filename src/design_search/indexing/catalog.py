"""
Catalog items handed to the sync pipeline, and the text built from them.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import CatalogError
from ..storage.base import RecordSource

PART_FILE_NAME = "part.json"

# Optional type-specific fields, appended to the content with a label.
_LABELLED_FIELDS: tuple[tuple[str, str], ...] = (
    ("material", "material"),
    ("surface_treatment", "surface treatment"),
    ("manufacturer", "manufacturer"),
    ("manufacturer_part_number", "manufacturer part number"),
    ("standard_number", "standard"),
    ("size", "size"),
    ("material_grade", "grade"),
)


class CatalogItem(BaseModel):
    """One part from the catalog, as plain data."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1, description="Stable owner identifier")
    part_number: str = Field(default="", description="Human-facing part number")
    name: str = ""
    type: str = ""
    memo: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    asset_name: str | None = None
    project_name: str | None = None
    file_path: str | None = None

    material: str | None = None
    surface_treatment: str | None = None
    manufacturer: str | None = None
    manufacturer_part_number: str | None = None
    standard_number: str | None = None
    size: str | None = None
    material_grade: str | None = None

    @property
    def label(self) -> str:
        return self.part_number or self.id

    def source(self) -> RecordSource:
        return RecordSource(
            owner_id=self.id,
            owner_label=self.label,
            name=self.name or None,
            category=self.type or None,
            memo=self.memo,
            asset_name=self.asset_name,
            project_name=self.project_name,
            file_path=self.file_path,
            metadata=dict(self.metadata),
        )


def build_content(item: CatalogItem) -> str:
    """Stored content: name, type, memo and the labelled optional fields."""
    parts = [item.name, item.type, item.memo or ""]
    for attr, label in _LABELLED_FIELDS:
        value = getattr(item, attr)
        if value:
            parts.append(f"{label}:{value}")
    return " ".join(part for part in parts if part and part.strip())


def build_searchable_text(item: CatalogItem) -> str:
    """Text sent to the embedding provider."""
    parts = [item.part_number, build_content(item), item.asset_name or "", item.project_name or ""]
    return " ".join(part for part in parts if part and part.strip())


def load_catalog(path: str | Path) -> list[CatalogItem]:
    """Read catalog items from a JSON array, a JSONL file, or a directory of part.json files."""
    target = Path(path).expanduser()
    if target.is_dir():
        return [
            _validate(_read_json(part_file), origin=str(part_file))
            for part_file in sorted(target.glob(f"*/{PART_FILE_NAME}"))
        ]
    if not target.exists():
        raise CatalogError(f"No such catalog: {target}")

    if target.suffix.lower() == ".jsonl":
        items: list[CatalogItem] = []
        text = _read_text(target)
        for line_no, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                raw = json.loads(line)
            except ValueError as exc:
                raise CatalogError(f"{target}:{line_no}: invalid JSON: {exc}") from exc
            items.append(_validate(raw, origin=f"{target}:{line_no}"))
        return items

    data = _read_json(target)
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise CatalogError(f"{target} must contain a JSON array of catalog items.")
    return [_validate(raw, origin=f"{target}[{i}]") for i, raw in enumerate(data)]


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise CatalogError(f"Cannot read {path}: {exc}") from exc


def _read_json(path: Path) -> Any:
    try:
        return json.loads(_read_text(path))
    except ValueError as exc:
        raise CatalogError(f"{path}: invalid JSON: {exc}") from exc


def _validate(raw: Any, *, origin: str) -> CatalogItem:
    try:
        return CatalogItem.model_validate(raw)
    except ValidationError as exc:
        raise CatalogError(f"{origin}: invalid catalog item: {exc}") from exc
