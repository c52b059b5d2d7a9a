"""Tag groups: ordered template workflows derived from '<prefix>-<NNN>' tags."""

from prompt_engine.tag_groups.extractor import (
    ParsedTag,
    TagGroup,
    extract_groups,
    get_group,
    get_group_templates,
    parse_tag,
)

__all__ = [
    "ParsedTag",
    "TagGroup",
    "extract_groups",
    "get_group",
    "get_group_templates",
    "parse_tag",
]
