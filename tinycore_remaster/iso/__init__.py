"""ISO remaster module.

This module handles:
- Loading remaster recipes
- Running the external archive and ISO tools
- The extract / inject / repack / author pipeline
"""

from tinycore_remaster.iso.models import BuildRecipe, load_recipe
from tinycore_remaster.iso.runner import (
    MissingToolError,
    ToolExecutionError,
    ToolRunner,
)
from tinycore_remaster.iso.service import ImageBuilder, RemasterResult

__all__ = [
    "BuildRecipe",
    "ImageBuilder",
    "MissingToolError",
    "RemasterResult",
    "ToolExecutionError",
    "ToolRunner",
    "load_recipe",
]
