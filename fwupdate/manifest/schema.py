"""Pydantic models for firmware manifest validation.

A manifest is a JSON object with top-level ``Model`` and ``Generation``
fields. Every other key names a firmware section and maps to an object
with at least ``Name`` (file name inside the package) and ``Hash``
(lowercase hex md5 of that file).
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MODEL_KEY = "Model"
GENERATION_KEY = "Generation"


class SectionSchema(BaseModel):
    """Schema for one firmware section.

    Attributes:
        filename: File name of the section image inside the package.
        hash: Declared content hash of the image.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    filename: str | None = Field(default=None, alias="Name")
    hash: str | None = Field(default=None, alias="Hash")


class ManifestSchema(BaseModel):
    """Complete manifest of a firmware package.

    Attributes:
        model: Hardware model the package is built for.
        generations: Hardware generations the package supports.
        sections: Sections keyed by name, in manifest order.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    model: str
    generations: list[str] = Field(default_factory=list)
    sections: dict[str, SectionSchema] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def split_sections(cls, data: Any) -> Any:
        """Split the flat manifest layout into identity fields and sections."""
        if not isinstance(data, dict) or MODEL_KEY not in data:
            return data
        sections: dict[str, Any] = {}
        for key, value in data.items():
            if key in (MODEL_KEY, GENERATION_KEY):
                continue
            if not isinstance(value, dict):
                raise ValueError(f"section {key!r} must be an object")
            sections[key] = value
        return {
            "model": data[MODEL_KEY],
            "generations": data.get(GENERATION_KEY, []),
            "sections": sections,
        }

    @field_validator("generations", mode="before")
    @classmethod
    def normalize_generations(cls, v: Any) -> list[str]:
        """Accept a single generation or a list, compare as strings."""
        if v is None:
            return []
        if isinstance(v, (list, tuple, set)):
            return [str(item) for item in v]
        return [str(v)]


__all__ = ["GENERATION_KEY", "MODEL_KEY", "ManifestSchema", "SectionSchema"]
