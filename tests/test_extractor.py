"""Tests for tag-group extraction."""

from prompt_engine.tag_groups.extractor import (
    ParsedTag,
    extract_groups,
    get_group,
    get_group_templates,
    parse_tag,
)


def test_parse_tag():
    assert parse_tag("mainReference-001") == ParsedTag(prefix="mainReference", order=1)
    assert parse_tag("scene-plan-012") == ParsedTag(prefix="scene-plan", order=12)
    assert parse_tag("characters") is None
    assert parse_tag("draft-v2") is None


def test_groups_are_ordered_by_number(make_template):
    templates = [
        make_template("tpl-b", tags=["foo-002"]),
        make_template("tpl-a", tags=["foo-001"]),
        make_template("tpl-c", tags=["foo-003"]),
    ]

    groups = extract_groups(templates)

    assert len(groups) == 1
    assert groups[0].name == "foo"
    assert groups[0].prefix == "foo"
    assert [t.id for t in groups[0].templates] == ["tpl-a", "tpl-b", "tpl-c"]
    assert groups[0].order_conflicts == []


def test_singleton_prefixes_are_dropped(make_template):
    templates = [
        make_template("tpl-ref-1", tags=["mainReference-001"]),
        make_template("tpl-ref-2", tags=["mainReference-002"]),
        make_template("tpl-scene", tags=["scenePlanning-001"]),
    ]

    groups = extract_groups(templates)

    assert [(g.name, g.count) for g in groups] == [("mainReference", 2)]


def test_groups_sorted_by_name_and_plain_tags_ignored(make_template):
    templates = [
        make_template("tpl-1", tags=["zeta-001", "characters"]),
        make_template("tpl-2", tags=["zeta-002", "alpha-001"]),
        make_template("tpl-3", tags=["alpha-002"]),
    ]

    assert [g.name for g in extract_groups(templates)] == ["alpha", "zeta"]


def test_ties_keep_encounter_order_and_are_flagged(make_template, caplog):
    templates = [
        make_template("tpl-x", tags=["foo-002"]),
        make_template("tpl-y", tags=["foo-001"]),
        make_template("tpl-z", tags=["foo-002"]),
    ]

    group = extract_groups(templates)[0]

    assert [t.id for t in group.templates] == ["tpl-y", "tpl-x", "tpl-z"]
    assert group.order_conflicts == [2]
    assert "sharing order numbers" in caplog.text


def test_template_counted_once_per_group(make_template):
    templates = [
        make_template("tpl-a", tags=["foo-001", "foo-005"]),
        make_template("tpl-b", tags=["foo-002"]),
    ]

    group = extract_groups(templates)[0]

    assert group.count == 2
    # First matching tag decides the position
    assert [t.id for t in group.templates] == ["tpl-a", "tpl-b"]


def test_duplicate_template_entries_are_merged(make_template):
    template = make_template("tpl-a", tags=["foo-001"])
    assert extract_groups([template, template]) == []


def test_recomputed_on_every_call(make_template):
    templates = [
        make_template("tpl-a", tags=["foo-001"]),
        make_template("tpl-b", tags=["foo-002"]),
    ]
    assert len(extract_groups(templates)) == 1
    templates.append(make_template("tpl-c", tags=["foo-003"]))
    assert extract_groups(templates)[0].count == 3


def test_get_group_templates_includes_singletons(make_template):
    templates = [
        make_template("tpl-scene", tags=["scenePlanning-001"]),
        make_template("tpl-other", tags=["other-001"]),
    ]

    assert [t.id for t in get_group_templates(templates, "scenePlanning")] == ["tpl-scene"]
    assert get_group_templates(templates, "missing") == []


def test_get_group(make_template):
    templates = [
        make_template("tpl-b", tags=["foo-010"]),
        make_template("tpl-a", tags=["foo-001"]),
    ]

    group = get_group(templates, "foo")

    assert [t.id for t in group.templates] == ["tpl-a", "tpl-b"]
    assert get_group(templates, "bar") is None


def test_get_group_rejects_singletons(make_template):
    templates = [make_template("tpl-scene", tags=["scenePlanning-001"])]

    assert get_group(templates, "scenePlanning") is None
