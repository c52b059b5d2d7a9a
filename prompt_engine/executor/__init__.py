"""Execution layer for prompt templates.

Takes an ExecutionRequest and runs it: resolving variables, calling a
provider, and recording the attempt.

Architecture (bottom-up):
- engine: One resolve + provider attempt, folded into an ExecutionResult
- db: SQLite/Postgres connection handling and schema
- execution_store: Create/read/list execution records
- service: Request validation, model selection, one record per attempt
- group_runner: Sequential tag-group runs with declared output hand-off
"""
