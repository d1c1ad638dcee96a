"""Skill catalog (SKILL.md manifests) and its directory watcher."""

from clawgate.skills.catalog import (
    MANIFEST_FILENAME,
    SkillCatalog,
    SkillManifest,
    parse_front_matter,
    strip_front_matter,
)
from clawgate.skills.watcher import SkillChangeHandler, SkillWatcher

__all__ = [
    "MANIFEST_FILENAME",
    "SkillCatalog",
    "SkillChangeHandler",
    "SkillManifest",
    "SkillWatcher",
    "parse_front_matter",
    "strip_front_matter",
]
