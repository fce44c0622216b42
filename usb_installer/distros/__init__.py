from __future__ import annotations

from ..lib.manifests import load_manifest
from .alpine import AlpineRecipe
from .arch import ArchRecipe
from .base import DistroRecipe

RECIPES = {
    "arch": ArchRecipe,
    "alpine": AlpineRecipe,
}


def load_recipe(distro: str) -> DistroRecipe:
    try:
        cls = RECIPES[distro]
    except KeyError:
        raise ValueError(f"Unsupported distro: {distro}") from None
    return cls(load_manifest(distro))


__all__ = ["AlpineRecipe", "ArchRecipe", "DistroRecipe", "RECIPES", "load_recipe"]
