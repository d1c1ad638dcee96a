"""Skill catalog — versioned index of SKILL.md manifests.

Learn: Layout on disk:

  skills/
    summarize/SKILL.md      ← candidate skill
    translate/SKILL.md
    notes/                  ← no SKILL.md → silently skipped

A manifest starts with a front-matter block:

  ---
  name: summarize
  description: "Summarize long documents"
  ---
  Full instructions (the body) ...

Only name/description are read at scan time. The body is loaded lazily by
load_body() when a skill is actually activated.

A rescan builds a brand-new dict and publishes it with one reference swap,
so readers see either the old map or the new one, never a mix. The version
counter is bumped once per rescan — even when nothing changed — and agent
handles compare it to decide when to rebuild.
"""

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import structlog

logger = structlog.get_logger()

MANIFEST_FILENAME = "SKILL.md"
FRONT_MATTER_DELIMITER = "---"
SELECT_ALL = "all"


@dataclass(frozen=True)
class SkillManifest:
    """Front-matter metadata of one skill directory."""

    name: str
    description: str
    directory: Path
    manifest_name: str = MANIFEST_FILENAME

    @property
    def manifest_path(self) -> Path:
        return self.directory / self.manifest_name


def _front_matter_bounds(lines: list[str]) -> Optional[tuple[int, int]]:
    """Indexes of the opening and closing delimiter lines, if both exist."""
    delimiters = [i for i, line in enumerate(lines) if line.strip() == FRONT_MATTER_DELIMITER]
    if len(delimiters) < 2:
        return None
    return delimiters[0], delimiters[1]


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_front_matter(text: str) -> Optional[dict[str, str]]:
    """Extract `key: value` pairs from the front-matter block.

    Returns None when the text has no closed block. Values are single-line;
    surrounding quotes are removed.
    """
    lines = text.splitlines()
    bounds = _front_matter_bounds(lines)
    if bounds is None:
        return None
    start, end = bounds

    fields: dict[str, str] = {}
    for line in lines[start + 1 : end]:
        key, sep, value = line.strip().partition(":")
        if not sep or not key:
            continue
        fields.setdefault(key.strip(), _unquote(value.strip()))
    return fields


def strip_front_matter(text: str) -> str:
    """Return the manifest body: everything after the closing delimiter, trimmed."""
    lines = text.splitlines()
    bounds = _front_matter_bounds(lines)
    if bounds is None:
        return text.strip()
    return "\n".join(lines[bounds[1] + 1 :]).strip()


class SkillCatalog:
    """Scans a root directory for skills and keeps a versioned index."""

    def __init__(self, root: str | Path, manifest_name: str = MANIFEST_FILENAME):
        self.root = Path(root).expanduser()
        self.manifest_name = manifest_name
        self._skills: dict[str, SkillManifest] = {}
        self._version = 0
        self._lock = threading.Lock()
        self.rescan()

    # ─── Read side ────────────────────────────────────────

    @property
    def version(self) -> int:
        return self._version

    def get(self, name: str) -> Optional[SkillManifest]:
        return self._skills.get(name)

    def all(self) -> list[SkillManifest]:
        return list(self._skills.values())

    def names(self) -> list[str]:
        return list(self._skills)

    def __len__(self) -> int:
        return len(self._skills)

    def __contains__(self, name: object) -> bool:
        return name in self._skills

    def resolve_skills(self, selection: Optional[Iterable[str]]) -> list[SkillManifest]:
        """Skills visible to an agent.

        None, empty, or containing "all" → every known skill. Otherwise the
        named skills that exist, in selection order; unknown names dropped.
        """
        snapshot = self._skills
        selected = list(selection or ())
        if not selected or SELECT_ALL in selected:
            return list(snapshot.values())
        return [snapshot[name] for name in selected if name in snapshot]

    def load_body(self, skill: SkillManifest) -> str:
        """Read the manifest again and return its body (front-matter stripped)."""
        try:
            text = skill.manifest_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("skills.body_unreadable", skill=skill.name, error=str(e))
            return ""
        return strip_front_matter(text)

    # ─── Scanning ─────────────────────────────────────────

    def rescan(self) -> int:
        """Rebuild the index from disk. Returns the new version."""
        skills: dict[str, SkillManifest] = {}

        if self.root.is_dir():
            for directory in sorted(p for p in self.root.iterdir() if p.is_dir()):
                manifest = self._load_manifest(directory)
                if manifest is None:
                    continue
                previous = skills.get(manifest.name)
                if previous is not None:
                    logger.warning(
                        "skills.duplicate_name",
                        skill=manifest.name,
                        kept=str(directory),
                        replaced=str(previous.directory),
                    )
                skills[manifest.name] = manifest
        else:
            logger.debug("skills.root_missing", root=str(self.root))

        with self._lock:
            self._skills = skills
            self._version += 1
            version = self._version

        logger.info("skills.scanned", root=str(self.root), count=len(skills), version=version)
        return version

    def _load_manifest(self, directory: Path) -> Optional[SkillManifest]:
        manifest_path = directory / self.manifest_name
        if not manifest_path.is_file():
            logger.debug("skills.no_manifest", directory=str(directory))
            return None

        try:
            text = manifest_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("skills.manifest_invalid", directory=str(directory), reason=str(e))
            return None

        fields = parse_front_matter(text) or {}
        name = fields.get("name", "").strip()
        description = fields.get("description", "").strip()
        if not name:
            logger.warning("skills.manifest_invalid", directory=str(directory), reason="missing 'name'")
            return None
        if not description:
            logger.warning(
                "skills.manifest_invalid", directory=str(directory), reason="missing 'description'"
            )
            return None

        logger.debug("skills.loaded", skill=name, description=description)
        return SkillManifest(name, description, directory, self.manifest_name)
