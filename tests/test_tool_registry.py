"""Tests for the static tool registry."""

from __future__ import annotations

import json

import pytest
from pydantic import BaseModel, ValidationError

from src.ephemeral_search.services.checklist.document_checklist import DocumentChecklist
from src.ephemeral_search.services.tools.registry import ToolName, ToolRegistry, UnknownTool, run_session_id
from tests.common.fakes import FakeStack, ScriptedChat, build_stack

DOC = "https://docs.example.com/contract.pdf"


def _registry(*replies: str) -> tuple[ToolRegistry, FakeStack]:
    stack = build_stack({DOC: b"%PDF"})
    return ToolRegistry(DocumentChecklist(stack.orchestrator, ScriptedChat(*replies))), stack


def test_function_schemas() -> None:
    registry, _ = _registry()
    schemas = registry.function_schemas()

    assert [s["function"]["name"] for s in schemas] == [ToolName.DOCUMENT_CHECKLIST.value]
    params = schemas[0]["function"]["parameters"]
    assert params["required"] == ["documents", "questions"]
    assert schemas[0]["type"] == "function"


def test_run_session_ids_are_unique_per_run() -> None:
    a, b = run_session_id("conv-1"), run_session_id("conv-1")
    assert a != b
    assert a.startswith("conv-1-")


@pytest.mark.asyncio
class TestDispatch:
    async def test_dispatches_json_arguments(self) -> None:
        registry, stack = _registry('{"answer": "Ja", "quote": "q"}')

        result = await registry.dispatch(
            "document_checklist",
            json.dumps({"documents": [DOC], "questions": ["Ist es unterschrieben?"]}),
            conversation_id="conv-1",
        )

        assert result["answers"][0]["question"] == "Ist es unterschrieben?"
        assert result["answers"][0]["answer"] == "Ja"
        assert all(not v for v in stack.search.resources.values())

    async def test_accepts_german_argument_names(self) -> None:
        registry, _ = _registry('{"answer": "Nein", "quote": ""}')

        result = await registry.dispatch(
            "document_checklist", {"dokumente": [DOC], "fragen": ["Frage?"]}, conversation_id="conv-2"
        )

        assert result["answers"][0]["answer"] == "Nein"

    async def test_unknown_tool_is_rejected(self) -> None:
        registry, stack = _registry()
        with pytest.raises(UnknownTool):
            await registry.dispatch("os.system", "{}", conversation_id="conv-3")
        assert stack.search.requests == []

    async def test_local_paths_are_rejected(self) -> None:
        registry, stack = _registry()
        for source in ("/app/.env", "file:///app/.env"):
            with pytest.raises(ValidationError):
                await registry.dispatch(
                    "document_checklist", {"documents": [source], "questions": ["q"]}, conversation_id="c"
                )
        assert stack.search.requests == []
        assert stack.container.blobs == {}

    async def test_invalid_arguments_are_rejected(self) -> None:
        registry, stack = _registry()
        with pytest.raises(ValidationError):
            await registry.dispatch("document_checklist", {"documents": [], "questions": ["q"]}, conversation_id="c")
        with pytest.raises(ValueError):
            await registry.dispatch("document_checklist", "{not json", conversation_id="c")
        assert stack.search.requests == []


@pytest.mark.asyncio
async def test_checklist_handler_rejects_foreign_arguments() -> None:
    registry, stack = _registry()

    class Other(BaseModel):
        documents: list[str] = [DOC]

    with pytest.raises(TypeError, match="DocumentChecklistArgs"):
        await registry._run_checklist(Other(), "conv-4")
    assert stack.search.requests == []
