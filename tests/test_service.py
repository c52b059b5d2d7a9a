"""Tests for execution request handling and record shaping."""

import sqlite3

import pytest

from prompt_engine.errors import (
    PersistenceError,
    ProviderError,
    TemplateNotFoundError,
    ValidationError,
)
from prompt_engine.executor.schemas import (
    ErrorKind,
    ExecutionRequest,
    ExecutionStatus,
    RecordStatus,
)
from prompt_engine.prompts.schemas import VariableDefinition

DEFAULT_MODEL = "test/default-model"


def request(**overrides) -> ExecutionRequest:
    data = {"template_id": "tpl-hello", "inputs": {"name": "Ava"}, "app": "auto-movie", "stage": "concept"}
    data.update(overrides)
    return ExecutionRequest(**data)


@pytest.fixture
def hello(make_template):
    return make_template(tags=["mainReference-001", "characters"], version=3)


@pytest.fixture
def service(make_service, hello):
    return make_service([hello])


class TestRequestValidation:
    @pytest.mark.parametrize("missing", ["app", "stage"])
    def test_app_and_stage_required(self, service, memory_store, adapter, missing):
        with pytest.raises(ValidationError) as exc_info:
            service.execute(request(**{missing: None}))
        assert missing in exc_info.value.fields
        assert memory_store.records == []
        assert adapter.calls == []

    def test_blank_app_rejected(self, service):
        with pytest.raises(ValidationError):
            service.execute(request(app="   "))

    def test_needs_exactly_one_template_source(self, service, memory_store):
        with pytest.raises(ValidationError):
            service.execute(request(template_id=None))
        with pytest.raises(ValidationError):
            service.execute(request(inline_template="Hi {{name}}", variable_defs=[]))
        assert memory_store.records == []

    def test_inline_requires_variable_defs(self, service):
        with pytest.raises(ValidationError) as exc_info:
            service.execute(request(template_id=None, inline_template="Hi {{name}}"))
        assert exc_info.value.fields == ["variable_defs"]

    def test_unknown_template(self, service, memory_store):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            service.execute(request(template_id="tpl-nope"))
        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.message == "Template not found: tpl-nope"
        assert memory_store.records == []


class TestExecution:
    def test_success_writes_exactly_one_record(self, service, memory_store, hello):
        outcome = service.execute(request(project_id="proj-1", feature="characters"))

        assert outcome.result.status == ExecutionStatus.SUCCESS
        assert len(memory_store.records) == 1
        record = memory_store.records[0]
        assert record == outcome.record
        assert record.id.startswith("ex-")
        assert record.status == RecordStatus.SUCCESS
        assert record.template_id == "tpl-hello"
        assert record.template_version == 3
        assert record.template_snapshot.template == hello.template
        assert record.template_snapshot.variable_defs == hello.variable_defs
        assert record.tags_snapshot == ["mainReference-001", "characters"]
        assert record.inputs == {"name": "Ava"}
        assert record.resolved_prompt == "Hello Ava, you are making a drama movie"
        assert record.output_raw == "echo: Hello Ava, you are making a drama movie"
        assert record.provider_used == "fake"
        assert record.project_id == "proj-1"
        assert record.feature == "characters"
        assert record.started_at <= record.finished_at

    def test_resolution_failure_records_unresolved_body(self, service, memory_store, adapter, hello):
        outcome = service.execute(request(inputs={}))

        assert outcome.result.error_kind == ErrorKind.MISSING_VARIABLES
        assert adapter.calls == []
        record = memory_store.records[0]
        assert record.status == RecordStatus.ERROR
        assert record.resolved_prompt == hello.template
        assert record.output_raw is None
        assert "Missing required variables: 'name'" in record.error_message

    def test_provider_failure_records_resolved_prompt(self, service, memory_store, adapter):
        def fail(prompt, model_id):
            raise ProviderError("OpenRouter API error: 500 Internal Server Error - boom")

        adapter.responder = fail
        outcome = service.execute(request())

        assert outcome.result.error_kind == ErrorKind.PROVIDER
        record = memory_store.records[0]
        assert record.status == RecordStatus.ERROR
        assert record.resolved_prompt == "Hello Ava, you are making a drama movie"
        assert record.error_message.startswith("OpenRouter API error: 500")

    def test_inline_template(self, service, memory_store):
        outcome = service.execute(
            request(
                template_id=None,
                inline_template="Summarise {{topic}}",
                variable_defs=[VariableDefinition(name="topic")],
                inputs={"topic": "the heist"},
            )
        )

        record = outcome.record
        assert record.template_id is None
        assert record.template_version is None
        assert record.tags_snapshot == []
        assert record.template_snapshot.template == "Summarise {{topic}}"
        assert record.resolved_prompt == "Summarise the heist"
        assert record.model == DEFAULT_MODEL

    def test_model_precedence(self, make_service, make_template, adapter):
        service = make_service([make_template(model="vendor/template-model")])

        service.execute(request(model="vendor/override"))
        service.execute(request())

        assert [model for _, model in adapter.calls] == ["vendor/override", "vendor/template-model"]

    def test_store_failure_raises_persistence_error(self, make_service, hello, memory_store):
        memory_store.fail_with = sqlite3.OperationalError("database is locked")
        service = make_service([hello])

        with pytest.raises(PersistenceError) as exc_info:
            service.execute(request())

        assert exc_info.value.result.status == ExecutionStatus.SUCCESS
        assert "was not saved" in exc_info.value.message
        assert "database is locked" in exc_info.value.message

    def test_sql_store_persists_record(self, make_service, hello, sql_store):
        service = make_service([hello], store=sql_store)

        outcome = service.execute(request())

        loaded = sql_store.get(outcome.record.id)
        assert loaded.resolved_prompt == outcome.record.resolved_prompt
        assert loaded.template_snapshot == outcome.record.template_snapshot
