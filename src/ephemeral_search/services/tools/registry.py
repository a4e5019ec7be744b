"""Static registry of the tools the chat layer may call.

A closed `ToolName` enum maps to a handler and a pydantic argument model;
names outside the enum are rejected, never resolved dynamically.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Mapping, Type, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from src.ephemeral_search.api.v1.sessions.schemas import DocumentRef, QuestionText
from src.ephemeral_search.services.checklist.document_checklist import DocumentChecklist

logger = logging.getLogger(__name__)


class ToolName(str, Enum):
    DOCUMENT_CHECKLIST = "document_checklist"


class UnknownTool(LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool {name!r}")
        self.name = name


class DocumentChecklistArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    documents: Annotated[
        List[DocumentRef],
        Field(min_length=1, max_length=50, validation_alias=AliasChoices("documents", "dokumente")),
    ]
    questions: Annotated[
        List[QuestionText],
        Field(min_length=1, max_length=50, validation_alias=AliasChoices("questions", "fragen")),
    ]


Handler = Callable[[BaseModel, str], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    description: str
    args_model: Type[BaseModel]
    parameters: Dict[str, Any]


DOCUMENT_CHECKLIST_SPEC = ToolSpec(
    name=ToolName.DOCUMENT_CHECKLIST,
    description=(
        "Collects the links to documents shared in the conversation and the questions "
        "that should be answered from those documents."
    ),
    args_model=DocumentChecklistArgs,
    parameters={
        "type": "object",
        "properties": {
            "documents": {
                "type": "array",
                "items": {"type": "string", "format": "uri"},
                "description": "Links/URLs to documents (PDF, DOCX) taken from the conversation history.",
            },
            "questions": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Questions to answer from the shared documents.",
            },
        },
        "required": ["documents", "questions"],
    },
)


def run_session_id(conversation_id: str) -> str:
    """Fresh session id per tool run so repeated runs in one conversation never share resources."""
    return f"{conversation_id}-{uuid.uuid4().hex}"


class ToolRegistry:
    def __init__(self, checklist: DocumentChecklist) -> None:
        self._checklist = checklist
        self._tools: Dict[ToolName, tuple[ToolSpec, Handler]] = {
            ToolName.DOCUMENT_CHECKLIST: (DOCUMENT_CHECKLIST_SPEC, self._run_checklist),
        }

    def function_schemas(self) -> List[Dict[str, Any]]:
        """OpenAI function-calling definitions for every registered tool."""
        return [
            {
                "type": "function",
                "function": {
                    "name": spec.name.value,
                    "description": spec.description,
                    "parameters": spec.parameters,
                },
            }
            for spec, _ in self._tools.values()
        ]

    async def dispatch(
        self,
        name: str,
        arguments: Union[str, Mapping[str, Any], None],
        *,
        conversation_id: str,
    ) -> Dict[str, Any]:
        try:
            tool = ToolName(name)
        except ValueError:
            raise UnknownTool(name) from None
        spec, handler = self._tools[tool]

        if arguments is None or arguments == "":
            raw: Any = {}
        elif isinstance(arguments, str):
            raw = json.loads(arguments)
        else:
            raw = dict(arguments)
        args = spec.args_model.model_validate(raw)

        logger.info("Dispatching tool %s for conversation %s", tool.value, conversation_id)
        return await handler(args, conversation_id)

    async def _run_checklist(self, args: BaseModel, conversation_id: str) -> Dict[str, Any]:
        if not isinstance(args, DocumentChecklistArgs):
            raise TypeError(f"expected DocumentChecklistArgs, got {type(args).__name__}")
        answers = await self._checklist.run(run_session_id(conversation_id), args.documents, args.questions)
        return {"answers": [a.model_dump() for a in answers]}
