"""Pydantic models for remaster recipes.

A recipe describes one ISO remaster: which base image to start from, which
extensions to inject into core.gz, and how to author the result. Recipes
can be loaded from YAML/JSON files or assembled from CLI flags.
"""

import json
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tinycore_remaster.extensions.naming import validate_extension_name


class BuildRecipe(BaseModel):
    """Schema for an ISO remaster recipe.

    Attributes:
        base_iso: Tiny Core ISO to start from.
        extensions: Extensions (with dependencies) to inject into core.gz.
        output_iso: Path of the ISO to produce.
        volume_label: ISO9660 volume label.
        core_archive: Location of the root filesystem archive inside the ISO.
        startup_script: Script installed as /etc/profile.d/startup.sh.
        boot_image: El Torito boot image inside the ISO.
        boot_catalog: El Torito boot catalog inside the ISO.
        isohybrid: Post-process the ISO so it also boots from USB media.
        keep_work_dirs: Keep extracted trees and downloads after the build.
    """

    model_config = ConfigDict(extra="forbid")

    base_iso: Path = Field(default=Path("Core-current.iso"))
    extensions: list[str] = Field(
        default_factory=lambda: ["ntfs-3g", "util-linux"], validate_default=True
    )
    output_iso: Path = Field(default=Path("remaster.iso"))
    volume_label: str = Field(default="tinycore", min_length=1, max_length=32)
    core_archive: str = Field(default="boot/core.gz")
    startup_script: Path | None = Field(default=Path("startup.sh"))
    boot_image: str = Field(default="boot/isolinux/isolinux.bin")
    boot_catalog: str = Field(default="boot/isolinux/boot.cat")
    isohybrid: bool = Field(default=True)
    keep_work_dirs: bool = Field(default=False)

    @field_validator("extensions")
    @classmethod
    def validate_extensions(cls, v: list[str]) -> list[str]:
        """Normalize extension names and reject unsafe ones."""
        return [validate_extension_name(name) for name in v]

    @field_validator("core_archive", "boot_image", "boot_catalog")
    @classmethod
    def validate_iso_path(cls, v: str) -> str:
        """Validate paths inside the ISO are relative and stay inside it."""
        path = Path(v)
        if path.is_absolute() or ".." in path.parts:
            raise ValueError(f"path must be relative to the ISO root, got '{v}'")
        return v


def load_recipe(path: Path) -> BuildRecipe:
    """Load and validate a recipe from a YAML or JSON file.

    Relative paths in the recipe are resolved against the recipe's directory.

    Args:
        path: Recipe file (.yaml, .yml or .json).

    Returns:
        Validated BuildRecipe.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the content is not a mapping.
        pydantic.ValidationError: If the data does not match the schema.
    """
    with open(path, encoding="utf-8") as f:
        if path.suffix.lower() == ".json":
            data: Any = json.load(f)
        else:
            data = yaml.safe_load(f)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping in {path}, got {type(data).__name__}")

    recipe = BuildRecipe.model_validate(data)
    base = path.parent.resolve()
    updates: dict[str, Any] = {}
    for field in ("base_iso", "output_iso", "startup_script"):
        value = getattr(recipe, field)
        if value is not None and not value.is_absolute() and field in data:
            updates[field] = base / value
    return recipe.model_copy(update=updates)


__all__ = ["BuildRecipe", "load_recipe"]
