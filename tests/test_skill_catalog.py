"""Skill catalog tests — front-matter parsing, scanning, versioning."""

from clawgate.skills import SkillCatalog, parse_front_matter, strip_front_matter

from conftest import write_skill


# ─── Front matter ─────────────────────────────────────────


def test_parse_front_matter_fields_and_quotes():
    text = '---\nname: summarize\ndescription: "Summarize: long docs"\n---\nBody'
    assert parse_front_matter(text) == {
        "name": "summarize",
        "description": "Summarize: long docs",
    }


def test_parse_front_matter_requires_closed_block():
    assert parse_front_matter("---\nname: x\n") is None
    assert parse_front_matter("no front matter here") is None


def test_parse_front_matter_first_key_wins():
    fields = parse_front_matter("---\nname: one\nname: two\n---\n")
    assert fields["name"] == "one"


def test_strip_front_matter():
    text = "---\nname: x\ndescription: y\n---\n# Steps\n1. do it\n"
    assert strip_front_matter(text).strip() == "# Steps\n1. do it"
    assert strip_front_matter("plain body") == "plain body"


# ─── Scanning ─────────────────────────────────────────────


def test_scan_finds_valid_skills(skills_root):
    write_skill(skills_root, "summarize", "summarize", "Summarize text")
    write_skill(skills_root, "translate", "translate", "Translate text")
    (skills_root / "notes").mkdir()  # no manifest → skipped silently

    catalog = SkillCatalog(skills_root)

    assert sorted(catalog.names()) == ["summarize", "translate"]
    assert len(catalog) == 2
    assert "summarize" in catalog
    assert catalog.get("summarize").description == "Summarize text"
    assert catalog.get("summarize").directory == skills_root / "summarize"


def test_scan_skips_incomplete_manifests(skills_root):
    write_skill(skills_root, "no-name", None, "has description")
    write_skill(skills_root, "no-desc", "no-desc", None)
    write_skill(skills_root, "ok", "ok", "fine")

    catalog = SkillCatalog(skills_root)

    assert catalog.names() == ["ok"]


def test_nested_manifests_are_not_skills(skills_root):
    write_skill(skills_root / "group", "inner", "inner", "too deep")
    assert len(SkillCatalog(skills_root)) == 0


def test_missing_root_is_empty(tmp_path):
    catalog = SkillCatalog(tmp_path / "nowhere")
    assert len(catalog) == 0
    assert catalog.version == 1


def test_version_increments_on_every_rescan(skills_root):
    catalog = SkillCatalog(skills_root)
    first = catalog.version
    assert catalog.rescan() == first + 1
    assert catalog.rescan() == first + 2


def test_rescan_picks_up_changes(skills_root):
    catalog = SkillCatalog(skills_root)
    assert len(catalog) == 0

    write_skill(skills_root, "new", "new", "fresh")
    catalog.rescan()

    assert catalog.names() == ["new"]


def test_duplicate_names_last_directory_wins(skills_root):
    write_skill(skills_root, "a-dir", "dup", "from a")
    write_skill(skills_root, "b-dir", "dup", "from b")

    catalog = SkillCatalog(skills_root)

    assert catalog.get("dup").description == "from b"
    assert len(catalog) == 1


# ─── Selection and bodies ─────────────────────────────────


def test_resolve_skills_selection(skills_root):
    for name in ("a", "b", "c"):
        write_skill(skills_root, name, name, f"skill {name}")
    catalog = SkillCatalog(skills_root)

    everything = {"a", "b", "c"}
    assert {s.name for s in catalog.resolve_skills(None)} == everything
    assert {s.name for s in catalog.resolve_skills([])} == everything
    assert {s.name for s in catalog.resolve_skills(["all"])} == everything
    assert [s.name for s in catalog.resolve_skills(["c", "a", "missing"])] == ["c", "a"]


def test_load_body_reads_lazily(skills_root):
    write_skill(skills_root, "s", "s", "d", body="Version one")
    catalog = SkillCatalog(skills_root)
    skill = catalog.get("s")

    write_skill(skills_root, "s", "s", "d", body="Version two")

    assert catalog.load_body(skill).strip() == "Version two"


def test_load_body_missing_file_returns_empty(skills_root):
    directory = write_skill(skills_root, "s", "s", "d", body="x")
    catalog = SkillCatalog(skills_root)
    (directory / "SKILL.md").unlink()
    assert catalog.load_body(catalog.get("s")) == ""


def test_load_body_undecodable_file_returns_empty(skills_root):
    directory = write_skill(skills_root, "s", "s", "d", body="x")
    catalog = SkillCatalog(skills_root)
    (directory / "SKILL.md").write_bytes(b"---\nname: s\n---\n\xff\xfe broken")
    assert catalog.load_body(catalog.get("s")) == ""
