"""
Platform loader — loads distribution family definitions from YAML.

Families live in ``src/core/data/platforms.yml``. This module loads
them into DistroFamily models and matches an os-release identity
against them.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

import yaml

from src.core.models.platform import DistroFamily

logger = logging.getLogger(__name__)

PLATFORMS_FILE = Path(__file__).resolve().parent.parent / "data" / "platforms.yml"


def load_families(path: Path | None = None) -> list[DistroFamily]:
    """Load every family definition.

    Args:
        path: Optional override for the YAML file.

    Returns:
        Families in declaration order. Invalid entries are skipped with
        a warning; an unreadable file yields an empty list.
    """
    if path is None:
        return list(_default_families())
    return _load(path)


@lru_cache(maxsize=1)
def _default_families() -> tuple[DistroFamily, ...]:
    return tuple(_load(PLATFORMS_FILE))


def _load(path: Path) -> list[DistroFamily]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load platform families from %s: %s", path, e)
        return []

    if not isinstance(data, dict) or not isinstance(data.get("families"), list):
        logger.warning("Platform file %s has no 'families' list, ignoring", path)
        return []

    families: list[DistroFamily] = []
    for entry in data["families"]:
        try:
            families.append(DistroFamily.model_validate(entry))
        except Exception as e:
            logger.warning("Skipping invalid family entry in %s: %s", path, e)
    logger.debug("Loaded %d platform families from %s", len(families), path)
    return families


def match_family(
    distro_id: str,
    id_like: list[str],
    families: list[DistroFamily] | None = None,
) -> DistroFamily | None:
    """Find the family for an os-release ``ID`` / ``ID_LIKE`` pair.

    The exact ``ID`` wins over ``ID_LIKE`` entries, which are tried in
    the order os-release lists them.
    """
    if families is None:
        families = load_families()

    for candidate in [distro_id, *id_like]:
        candidate = candidate.lower()
        for family in families:
            if candidate in family.ids:
                return family
    return None
