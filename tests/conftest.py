"""Shared fixtures: fake provider adapters, a temp SQLite database and template factories."""

from datetime import timedelta
from typing import Callable, Optional

import pytest

from prompt_engine.executor import db
from prompt_engine.executor.engine import ExecutionEngine
from prompt_engine.executor.execution_store import SqlExecutionStore, new_execution_id
from prompt_engine.executor.schemas import ExecutionRecord, RecordStatus, TemplateSnapshot
from prompt_engine.executor.service import PromptExecutionService
from prompt_engine.llm.backends import ModelCapability, ProviderCallResult
from prompt_engine.llm.router import ProviderRouter, VendorModelRoute
from prompt_engine.prompts.schemas import PromptTemplate, VariableDefinition, utc_now

TEXT_MODEL = "test/text-model"
DEFAULT_MODEL = "test/default-model"


class FakeAdapter:
    """Provider adapter that answers from a responder instead of the network.

    The responder gets (prompt, model_id) and returns output text, or raises.
    """

    def __init__(
        self,
        name: str = "fake",
        capability: ModelCapability = ModelCapability.TEXT,
        responder: Optional[Callable[[str, str], str]] = None,
    ):
        self._name = name
        self._capability = capability
        self.responder = responder or (lambda prompt, model_id: f"echo: {prompt}")
        self.calls: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def capability(self) -> ModelCapability:
        return self._capability

    def execute(self, prompt: str, model_id: str) -> ProviderCallResult:
        self.calls.append((prompt, model_id))
        output = self.responder(prompt, model_id)
        return ProviderCallResult(
            output=output,
            model_id=model_id,
            duration_ms=1,
            input_tokens=len(prompt.split()),
            output_tokens=len(output.split()),
        )


class MemoryStore:
    """ExecutionStore kept in a list, optionally failing every write."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.records: list[ExecutionRecord] = []
        self.fail_with = fail_with

    def create(self, record: ExecutionRecord) -> ExecutionRecord:
        if self.fail_with is not None:
            raise self.fail_with
        self.records.append(record)
        return record

    def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        return next((r for r in self.records if r.id == execution_id), None)

    def list(self, filters=None, page: int = 1, limit: int = 20):
        raise NotImplementedError


class DictCatalog:
    def __init__(self, templates: list[PromptTemplate]):
        self.templates = {t.id: t for t in templates}

    def get(self, template_id: str) -> Optional[PromptTemplate]:
        return self.templates.get(template_id)


@pytest.fixture
def sqlite_db(tmp_path):
    """Point the executor database at a throwaway SQLite file."""
    previous_url, previous_path = db.DATABASE_URL, db.SQLITE_PATH
    path = tmp_path / "executions.db"
    db.configure("", path)
    yield path
    db.configure(previous_url, previous_path)


@pytest.fixture
def make_adapter() -> type[FakeAdapter]:
    return FakeAdapter


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def provider_router(adapter) -> ProviderRouter:
    return ProviderRouter([(VendorModelRoute(), adapter)])


@pytest.fixture
def make_template() -> Callable[..., PromptTemplate]:
    def _make(
        template_id: str = "tpl-hello",
        body: str = "Hello {{name}}, you are making a {{genre}} movie",
        variable_defs: Optional[list[VariableDefinition]] = None,
        tags: Optional[list[str]] = None,
        **overrides,
    ) -> PromptTemplate:
        if variable_defs is None:
            variable_defs = [
                VariableDefinition(name="name", required=True),
                VariableDefinition(name="genre", required=False, default_value="drama"),
            ]
        data = dict(
            id=template_id,
            name=template_id.replace("tpl-", "").replace("-", " ").title(),
            app="auto-movie",
            stage="concept",
            tags=tags or [],
            model=TEXT_MODEL,
            template=body,
            variable_defs=variable_defs,
        )
        data.update(overrides)
        return PromptTemplate(**data)

    return _make


@pytest.fixture
def make_record() -> Callable[..., ExecutionRecord]:
    base_time = utc_now()
    counter = {"n": 0}

    def _make(**overrides) -> ExecutionRecord:
        # Each record is a second newer than the last, so ordering is deterministic
        counter["n"] += 1
        ts = base_time + timedelta(seconds=counter["n"])
        data = dict(
            id=new_execution_id(),
            template_id="tpl-hello",
            template_version=1,
            template_snapshot=TemplateSnapshot(
                template="Hello {{name}}",
                variable_defs=[VariableDefinition(name="name")],
            ),
            app="auto-movie",
            stage="concept",
            tags_snapshot=["brief-001"],
            inputs={"name": "Ava"},
            resolved_prompt="Hello Ava",
            model=TEXT_MODEL,
            status=RecordStatus.SUCCESS,
            output_raw="ok",
            started_at=ts,
            finished_at=ts,
            created_at=ts,
            updated_at=ts,
        )
        data.update(overrides)
        return ExecutionRecord(**data)

    return _make


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def make_service(provider_router, memory_store):
    """Build a PromptExecutionService over a template list."""

    def _make(templates: list[PromptTemplate], store=None) -> PromptExecutionService:
        return PromptExecutionService(
            catalog=DictCatalog(templates),
            engine=ExecutionEngine(provider_router),
            store=store if store is not None else memory_store,
            default_model=DEFAULT_MODEL,
        )

    return _make


@pytest.fixture
def sql_store(sqlite_db) -> SqlExecutionStore:
    return SqlExecutionStore()
