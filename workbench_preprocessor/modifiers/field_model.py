from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from workbench_preprocessor.cells import normalize_cell
from workbench_preprocessor.modifiers.base import ColumnModifier, RowContext

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent / "field_model_mappings.toml"
FALLBACK_MODEL = "Binary"
RESERVED_TABLES = {"extension_lookup", "default"}


class FieldModelConfigError(ValueError):
    pass


def normalize_extension(value: str) -> str:
    return value.strip().lstrip(".").lower()


@dataclass(frozen=True)
class FieldModelMapping:
    """
    Extension -> Islandora model lookup.

    Built once before a processing pass. Entries from ``[extension_lookup]``
    win over category tables; among categories the first one listing an
    extension wins.
    """

    mappings: dict[str, str] = field(default_factory=dict)
    default_model: str = FALLBACK_MODEL

    @classmethod
    def from_default_config(cls) -> "FieldModelMapping":
        return cls.from_toml_path(DEFAULT_CONFIG_PATH)

    @classmethod
    def from_toml_path(cls, path: str | Path) -> "FieldModelMapping":
        config_path = Path(path)
        try:
            contents = config_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise FieldModelConfigError(
                f"Failed to read field model mapping configuration from {config_path}: {exc}"
            ) from exc
        return cls.from_toml_str(contents)

    @classmethod
    def from_toml_str(cls, contents: str) -> "FieldModelMapping":
        try:
            payload = tomllib.loads(contents)
        except tomllib.TOMLDecodeError as exc:
            raise FieldModelConfigError(f"Failed to parse field model mapping configuration: {exc}") from exc
        return cls.from_dict(payload)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "FieldModelMapping":
        mappings: dict[str, str] = {}

        lookup = payload.get("extension_lookup", {})
        if not isinstance(lookup, dict):
            raise FieldModelConfigError("[extension_lookup] must be a table of extension = model entries")
        for ext, model in lookup.items():
            if not isinstance(model, str):
                raise FieldModelConfigError(f"extension_lookup entry '{ext}' must map to a string model")
            mappings[normalize_extension(ext)] = model

        for name, category in payload.items():
            if name in RESERVED_TABLES:
                continue
            if not isinstance(category, dict) or not isinstance(category.get("model"), str):
                raise FieldModelConfigError(f"Category '{name}' must be a table with a string 'model'")
            extensions = category.get("extensions", [])
            if not isinstance(extensions, list) or not all(isinstance(ext, str) for ext in extensions):
                raise FieldModelConfigError(f"Category '{name}' has a non-list or non-string 'extensions' value")
            for ext in extensions:
                mappings.setdefault(normalize_extension(ext), category["model"])

        default_model = FALLBACK_MODEL
        default = payload.get("default")
        if default is not None:
            if not isinstance(default, dict) or not isinstance(default.get("model"), str):
                raise FieldModelConfigError("[default] must be a table with a string 'model'")
            default_model = default["model"]

        return cls(mappings=mappings, default_model=default_model)

    def model_for_extension(self, extension: str) -> str:
        key = normalize_extension(extension)
        if not key:
            return self.default_model
        return self.mappings.get(key, self.default_model)


class FieldModelModifier(ColumnModifier):
    def __init__(self, mapping: FieldModelMapping | None = None) -> None:
        self.mapping = mapping if mapping is not None else FieldModelMapping.from_default_config()

    def modify(self, value: str, row: RowContext) -> str:
        target_model = self.mapping.model_for_extension(row.file_extension())
        current_value = normalize_cell(value)
        if current_value == target_model:
            return current_value
        return target_model

    def description(self) -> str:
        return "Populates field_model based on configured file extension mappings"
