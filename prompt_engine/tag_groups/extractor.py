"""Tag-group extraction.

Templates carrying '<prefix>-<NNN>' tags form ordered workflows. Groups are
a pure projection over the template catalog: nothing here is cached or
persisted, every call recomputes from the templates it is given.
"""

import logging
import re
from typing import Iterable, NamedTuple, Optional

from pydantic import BaseModel, Field

from prompt_engine.prompts.schemas import PromptTemplate

logger = logging.getLogger(__name__)

TAG_PATTERN = re.compile(r"^(.+)-(\d+)$")

# A single template is not a workflow
MIN_GROUP_SIZE = 2


class ParsedTag(NamedTuple):
    prefix: str
    order: int


class TagGroup(BaseModel):
    """Templates sharing a tag prefix, ordered by the tag's numeric suffix."""

    name: str
    prefix: str
    count: int
    templates: list[PromptTemplate]
    order_conflicts: list[int] = Field(
        default_factory=list,
        description="Suffix numbers carried by more than one template",
    )


def parse_tag(tag: str) -> Optional[ParsedTag]:
    """Split 'mainReference-001' into ('mainReference', 1); None if not a group tag."""
    match = TAG_PATTERN.match(tag)
    if match is None:
        return None
    return ParsedTag(prefix=match.group(1), order=int(match.group(2)))


def _collect(templates: Iterable[PromptTemplate]) -> dict[str, list[tuple[int, PromptTemplate]]]:
    """Map prefix -> [(order, template)] in encounter order, one entry per template id."""
    by_prefix: dict[str, list[tuple[int, PromptTemplate]]] = {}
    seen: set[tuple[str, str]] = set()

    for template in templates:
        for tag in template.tags:
            parsed = parse_tag(tag)
            if parsed is None:
                continue
            key = (parsed.prefix, template.id)
            if key in seen:
                continue
            seen.add(key)
            by_prefix.setdefault(parsed.prefix, []).append((parsed.order, template))

    return by_prefix


def _order_conflicts(members: list[tuple[int, PromptTemplate]]) -> list[int]:
    counts: dict[int, int] = {}
    for order, _ in members:
        counts[order] = counts.get(order, 0) + 1
    return sorted(order for order, n in counts.items() if n > 1)


def extract_groups(templates: Iterable[PromptTemplate]) -> list[TagGroup]:
    """Group templates into ordered tag groups.

    Groups with fewer than two distinct templates are dropped. Members are
    sorted by suffix number; equal numbers keep encounter order and are
    reported in order_conflicts. Groups come back sorted by name.
    """
    groups: list[TagGroup] = []

    for prefix, members in _collect(templates).items():
        if len(members) < MIN_GROUP_SIZE:
            continue

        ordered = sorted(members, key=lambda item: item[0])
        conflicts = _order_conflicts(ordered)
        if conflicts:
            logger.warning(
                f"[{prefix}] Tag group has templates sharing order numbers: {conflicts}"
            )

        groups.append(
            TagGroup(
                name=prefix,
                prefix=prefix,
                count=len(ordered),
                templates=[template for _, template in ordered],
                order_conflicts=conflicts,
            )
        )

    groups.sort(key=lambda group: group.name)
    return groups


def get_group_templates(
    templates: Iterable[PromptTemplate], group_name: str
) -> list[PromptTemplate]:
    """Ordered members of a single tag prefix, singletons included."""
    members = _collect(templates).get(group_name, [])
    return [template for _, template in sorted(members, key=lambda item: item[0])]


def get_group(templates: Iterable[PromptTemplate], group_name: str) -> Optional[TagGroup]:
    """Build one runnable group by name.

    Returns None for unknown prefixes and for singletons, matching what
    extract_groups lists.
    """
    members = _collect(templates).get(group_name, [])
    if len(members) < MIN_GROUP_SIZE:
        return None
    ordered = sorted(members, key=lambda item: item[0])
    return TagGroup(
        name=group_name,
        prefix=group_name,
        count=len(ordered),
        templates=[template for _, template in ordered],
        order_conflicts=_order_conflicts(ordered),
    )
