"""Persist execution records to the database.

Every validated execution attempt produces exactly one record, committed
immediately after the engine returns. Records are create-only from the
execution path; nothing here updates or deletes them.
"""

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Optional, Protocol, runtime_checkable

from prompt_engine.executor import db
from prompt_engine.executor.db import _json_dumps, _json_loads
from prompt_engine.executor.schemas import (
    ExecutionFilters,
    ExecutionPage,
    ExecutionRecord,
    Pagination,
    TemplateSnapshot,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

_COLUMNS = (
    "id", "template_id", "template_version", "template_snapshot", "app", "stage",
    "feature", "project_id", "tags_snapshot", "inputs", "resolved_prompt", "model",
    "status", "output_raw", "error_message", "provider_used", "execution_time_ms",
    "notes", "started_at", "finished_at", "created_at", "updated_at",
)


def new_execution_id() -> str:
    return f"ex-{uuid.uuid4().hex[:12]}"


def _ts(value: Optional[datetime]) -> Optional[str]:
    """Normalise timestamps to UTC ISO strings so text columns sort correctly."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


@runtime_checkable
class ExecutionStore(Protocol):
    """Where execution records are written and read back."""

    def create(self, record: ExecutionRecord) -> ExecutionRecord:
        ...

    def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        ...

    def list(
        self,
        filters: Optional[ExecutionFilters] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> ExecutionPage:
        ...


class SqlExecutionStore:
    """ExecutionStore over the executor database (SQLite or Postgres)."""

    def create(self, record: ExecutionRecord) -> ExecutionRecord:
        snapshot = record.template_snapshot
        values = (
            record.id,
            record.template_id,
            record.template_version,
            _json_dumps(snapshot.model_dump(mode="json")) if snapshot else None,
            record.app,
            record.stage,
            record.feature,
            record.project_id,
            _json_dumps(record.tags_snapshot),
            _json_dumps(record.inputs),
            record.resolved_prompt,
            record.model,
            record.status.value,
            record.output_raw,
            record.error_message,
            record.provider_used,
            record.execution_time_ms,
            record.notes,
            _ts(record.started_at),
            _ts(record.finished_at),
            _ts(record.created_at),
            _ts(record.updated_at),
        )
        placeholders = ", ".join(["%s"] * len(_COLUMNS))
        db.execute(
            f"INSERT INTO prompt_executions ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
            values,
        )

        logger.info(
            f"Saved execution {record.id}: template={record.template_id or 'inline'}, "
            f"model={record.model}, status={record.status.value}, "
            f"time={record.execution_time_ms}ms"
        )
        return record

    def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        row = db.execute(
            "SELECT * FROM prompt_executions WHERE id = %s",
            (execution_id,),
            fetch="one",
        )
        if row is None:
            return None
        return _row_to_record(row)

    def list(
        self,
        filters: Optional[ExecutionFilters] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> ExecutionPage:
        """List records newest first, filtered and paginated."""
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        where, params = _build_where(filters or ExecutionFilters())

        count_row = db.execute(
            f"SELECT COUNT(*) AS total FROM prompt_executions{where}",
            tuple(params),
            fetch="one",
        )
        total_docs = int(count_row["total"]) if count_row else 0
        total_pages = max(math.ceil(total_docs / limit), 1) if total_docs else 0

        rows = db.execute(
            f"""SELECT * FROM prompt_executions{where}
                ORDER BY created_at DESC, id DESC
                LIMIT %s OFFSET %s""",
            tuple(params) + (limit, (page - 1) * limit),
            fetch="all",
        )

        return ExecutionPage(
            executions=[_row_to_record(row) for row in rows],
            pagination=Pagination(
                page=page,
                limit=limit,
                total_pages=total_pages,
                total_docs=total_docs,
                has_next_page=page < total_pages,
                has_prev_page=page > 1,
            ),
        )


def _build_where(filters: ExecutionFilters) -> tuple[str, list]:
    conditions: list[str] = []
    params: list = []

    for column in ("app", "stage", "feature", "project_id", "template_id"):
        value = getattr(filters, column)
        if value:
            conditions.append(f"{column} = %s")
            params.append(value)
    if filters.status is not None:
        conditions.append("status = %s")
        params.append(filters.status.value)
    if filters.date_from is not None:
        conditions.append("created_at >= %s")
        params.append(_ts(filters.date_from))
    if filters.date_to is not None:
        conditions.append("created_at <= %s")
        params.append(_ts(filters.date_to))
    if filters.search:
        term = f"%{filters.search.lower()}%"
        conditions.append(
            "(LOWER(resolved_prompt) LIKE %s OR LOWER(COALESCE(notes, '')) LIKE %s"
            " OR LOWER(COALESCE(error_message, '')) LIKE %s)"
        )
        params.extend([term, term, term])

    if not conditions:
        return "", params
    return " WHERE " + " AND ".join(conditions), params


def _row_to_record(row: dict) -> ExecutionRecord:
    snapshot = row.get("template_snapshot")
    if snapshot:
        snapshot = TemplateSnapshot.model_validate(_json_loads(snapshot))
    row["template_snapshot"] = snapshot or None
    row["tags_snapshot"] = _json_loads(row.get("tags_snapshot")) or []
    row["inputs"] = _json_loads(row.get("inputs")) or {}
    return ExecutionRecord.model_validate(row)
