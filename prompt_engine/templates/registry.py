"""Template registry - loads and serves prompt templates from JSON files.

Templates are versioned values. An edit never rewrites a template in
place: the current version moves to history/<template_id>/v<N>.json and
the edited template is saved with version N+1. Execution records that
point at (template_id, version) therefore stay meaningful.
"""

import json
import logging
import uuid
from pathlib import Path
from typing import Optional

from prompt_engine.prompts.schemas import (
    PromptTemplate,
    PromptTemplateSummary,
    TemplateWrite,
    utc_now,
)
from prompt_engine.tag_groups.extractor import parse_tag

logger = logging.getLogger(__name__)

HISTORY_DIR_NAME = "history"


def new_template_id() -> str:
    return f"tpl-{uuid.uuid4().hex[:12]}"


class TemplateRegistry:
    """Registry of prompt templates loaded from JSON files.

    Each *.json file in the definitions directory holds the current version
    of one PromptTemplate. Prior versions live under history/.
    """

    def __init__(self, definitions_dir: Optional[Path] = None):
        """Initialize registry with optional custom definitions directory."""
        if definitions_dir is None:
            definitions_dir = Path(__file__).parent / "definitions"
        self.definitions_dir = Path(definitions_dir)
        self._templates: dict[str, PromptTemplate] = {}
        self._history: dict[str, dict[int, PromptTemplate]] = {}
        self._file_map: dict[str, Path] = {}  # template_id -> source file path
        self._loaded = False

    @property
    def history_dir(self) -> Path:
        return self.definitions_dir / HISTORY_DIR_NAME

    def load(self) -> None:
        """Load all template definitions and their history."""
        if self._loaded:
            return

        if not self.definitions_dir.exists():
            logger.warning(f"Definitions directory not found: {self.definitions_dir}")
            self._loaded = True
            return

        for json_file in sorted(self.definitions_dir.glob("*.json")):
            template = self._read(json_file)
            if template is not None:
                self._templates[template.id] = template
                self._file_map[template.id] = json_file
                logger.debug(f"Loaded template: {template.id} v{template.version}")

        for json_file in sorted(self.history_dir.glob("*/v*.json")):
            template = self._read(json_file)
            if template is not None:
                self._history.setdefault(template.id, {})[template.version] = template

        self._loaded = True
        logger.info(f"Loaded {len(self._templates)} prompt templates")

    def _read(self, json_file: Path) -> Optional[PromptTemplate]:
        try:
            with open(json_file, "r") as f:
                data = json.load(f)
            return PromptTemplate.model_validate(data)
        except Exception as e:
            logger.error(f"Failed to load template from {json_file}: {e}")
            return None

    def _write(self, json_file: Path, template: PromptTemplate) -> None:
        json_file.parent.mkdir(parents=True, exist_ok=True)
        with open(json_file, "w") as f:
            json.dump(template.model_dump(mode="json"), f, indent=2)
            f.write("\n")

    def get(self, template_id: str) -> Optional[PromptTemplate]:
        """Get the current version of a template."""
        self.load()
        return self._templates.get(template_id)

    def get_version(self, template_id: str, version: int) -> Optional[PromptTemplate]:
        """Get a specific version of a template, current or historical."""
        current = self.get(template_id)
        if current is not None and current.version == version:
            return current
        return self._history.get(template_id, {}).get(version)

    def history(self, template_id: str) -> list[PromptTemplate]:
        """All versions of a template, oldest first, current last."""
        self.load()
        versions = sorted(self._history.get(template_id, {}).values(), key=lambda t: t.version)
        current = self._templates.get(template_id)
        if current is not None:
            versions.append(current)
        return versions

    def list_all(self) -> list[PromptTemplate]:
        """List current versions of all templates."""
        self.load()
        return list(self._templates.values())

    def list_summaries(self) -> list[PromptTemplateSummary]:
        """List lightweight template summaries."""
        return [_summary(t) for t in self.list_all()]

    def list_filtered(
        self,
        app: Optional[str] = None,
        stage: Optional[str] = None,
        feature: Optional[str] = None,
        tag_group: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[PromptTemplate]:
        """List templates matching every given filter."""
        needle = search.lower() if search else None
        matches = []
        for t in self.list_all():
            if app and t.app != app:
                continue
            if stage and t.stage != stage:
                continue
            if feature and t.feature != feature:
                continue
            if tag_group and not _in_group(t, tag_group):
                continue
            if needle and not any(
                needle in (text or "").lower() for text in (t.name, t.template, t.notes)
            ):
                continue
            matches.append(t)
        return matches

    def create(self, data: TemplateWrite, template_id: Optional[str] = None) -> PromptTemplate:
        """Create a new template, normally at version 1.

        An id that was deleted earlier continues after its highest archived
        version, so historical versions stay addressable.

        Raises:
            ValueError: If template_id is already taken
        """
        self.load()
        template_id = template_id or new_template_id()
        if template_id in self._templates:
            raise ValueError(f"Template already exists: {template_id}")

        now = utc_now()
        template = PromptTemplate(
            id=template_id,
            version=max(self._history.get(template_id, {}), default=0) + 1,
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        json_file = self.definitions_dir / f"{template_id}.json"
        self._write(json_file, template)

        self._templates[template_id] = template
        self._file_map[template_id] = json_file
        logger.info(f"Created template: {template_id} -> {json_file}")
        return template

    def update(self, template_id: str, data: TemplateWrite) -> Optional[PromptTemplate]:
        """Save an edit as a new version. Returns None if the template does not exist."""
        current = self.get(template_id)
        if current is None:
            return None

        self._write(self.history_dir / template_id / f"v{current.version}.json", current)
        self._history.setdefault(template_id, {})[current.version] = current

        updated = PromptTemplate(
            id=template_id,
            version=current.version + 1,
            created_at=current.created_at,
            updated_at=utc_now(),
            **data.model_dump(),
        )
        json_file = self._file_map.get(template_id, self.definitions_dir / f"{template_id}.json")
        self._write(json_file, updated)

        self._templates[template_id] = updated
        self._file_map[template_id] = json_file
        logger.info(f"Updated template: {template_id} v{current.version} -> v{updated.version}")
        return updated

    def delete(self, template_id: str) -> bool:
        """Remove a template. Its current version is archived with the rest of its history."""
        self.load()
        if template_id not in self._templates:
            return False

        current = self._templates[template_id]
        self._write(self.history_dir / template_id / f"v{current.version}.json", current)
        self._history.setdefault(template_id, {})[current.version] = current

        json_file = self._file_map.pop(template_id, None)
        if json_file is not None and json_file.exists():
            json_file.unlink()
        del self._templates[template_id]
        logger.info(f"Deleted template: {template_id}")
        return True

    def count(self) -> int:
        """Get total number of templates."""
        self.load()
        return len(self._templates)

    def reload(self) -> None:
        """Force reload all definitions."""
        self._loaded = False
        self._templates.clear()
        self._history.clear()
        self._file_map.clear()
        self.load()


def _in_group(t: PromptTemplate, prefix: str) -> bool:
    for tag in t.tags:
        parsed = parse_tag(tag)
        if parsed and parsed.prefix == prefix:
            return True
    return False


def _summary(t: PromptTemplate) -> PromptTemplateSummary:
    return PromptTemplateSummary(
        id=t.id,
        name=t.name,
        app=t.app,
        stage=t.stage,
        feature=t.feature,
        tags=t.tags,
        model=t.model,
        version=t.version,
        variable_count=len(t.variable_defs),
        updated_at=t.updated_at,
    )


# Global registry instance
_registry: Optional[TemplateRegistry] = None


def get_template_registry() -> TemplateRegistry:
    """Get the global template registry instance."""
    global _registry
    if _registry is None:
        from prompt_engine.config import get_settings

        _registry = TemplateRegistry(get_settings().templates_dir)
        _registry.load()
    return _registry
