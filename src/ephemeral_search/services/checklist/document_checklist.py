"""Answer a list of questions over a list of documents in one ephemeral session.

Each question gets the top hits of the session index as numbered context
blocks; the chat model answers with `{"answer": ..., "quote": ...}` where the
quote is a verbatim excerpt. Model output is parsed leniently and every
question gets an answer, even when the model call fails.
"""

from __future__ import annotations

import json
import logging
import re
from typing import List, Optional, Protocol, Sequence, Tuple

from src.ephemeral_search.api.v1.sessions.schemas import ChecklistAnswer
from src.ephemeral_search.domain.sessions import RetrievalHit
from src.ephemeral_search.services.sessions.orchestrator import AskFn, SessionOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 5
MAX_CONTEXT_CHARS = 1200
MAX_QUOTE_CHARS = 800
FALLBACK_QUOTE_CHARS = 400

UNTITLED = "Unbenannt"
FALLBACK_ANSWER = "Antwort basierend auf den bereitgestellten Ausschnitten."

SYSTEM_PROMPT = " ".join(
    [
        "Du bist ein präziser Assistent. Antworte knapp auf Deutsch.",
        "Nutze AUSSCHLIESSLICH den bereitgestellten Kontext.",
        "Gib die Antwort und zusätzlich eine WORTWÖRTLICHE Zitierstelle (quote) aus den Text-Abschnitten.",
        'Die quote MUSS ein zusammenhängender, wörtlicher Teilstring aus einem der bereitgestellten "Text:"-Blöcke sein (ohne Paraphrase).',
        "Die quote soll möglichst informativ sein: 200 bis 600 Zeichen, aber NIE mehr als 800 Zeichen.",
        'Wenn keine verlässliche Antwort im Kontext vorhanden ist, setze answer auf "Keine Antwort im Kontext gefunden." und quote auf eine leere Zeichenkette.',
        'Antworte ausschließlich mit strikt gültigem JSON ohne Markdown oder Code-Fences, genau im Format {"answer":"...","quote":"..."}. Keine zusätzlichen Erklärungen.',
    ]
)

_FENCE_OPEN = re.compile(r"^```[a-zA-Z]*\n?")
_FENCE_CLOSE = re.compile(r"```\s*$")


class ChatModel(Protocol):
    async def ask(self, system: str, user: str) -> str:
        ...


def build_context(hits: Sequence[RetrievalHit]) -> str:
    blocks = []
    for i, hit in enumerate(hits, start=1):
        blocks.append(
            f"[#{i}] Titel: {hit.title or UNTITLED}\n"
            f"URL: {hit.source_url or ''}\n"
            f"Text:\n{hit.text[:MAX_CONTEXT_CHARS]}"
        )
    return "\n\n---\n\n".join(blocks)


def build_user_prompt(question: str, hits: Sequence[RetrievalHit]) -> str:
    return f"Frage: {question}\n\nKontextausschnitte (#1 bis #{len(hits)}):\n{build_context(hits)}"


def parse_answer(raw: str) -> Tuple[str, str]:
    """(answer, quote) from model output; non-JSON output is taken as the answer."""
    cleaned = raw.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", cleaned)).strip()
    first, last = cleaned.find("{"), cleaned.rfind("}")
    if first != -1 and last > first:
        cleaned = cleaned[first:last + 1]
    try:
        parsed = json.loads(cleaned)
    except ValueError:
        return raw.strip(), ""
    if not isinstance(parsed, dict):
        return raw.strip(), ""
    answer = parsed.get("answer")
    quote = parsed.get("quote")
    return (
        answer.strip() if isinstance(answer, str) else "",
        quote if isinstance(quote, str) else "",
    )


def finalize_quote(quote: str, hits: Sequence[RetrievalHit]) -> str:
    quote = quote.strip()[:MAX_QUOTE_CHARS]
    if not quote and hits:
        quote = hits[0].text[:MAX_CONTEXT_CHARS][:FALLBACK_QUOTE_CHARS]
    return quote


class DocumentChecklist:
    def __init__(self, orchestrator: SessionOrchestrator, chat: ChatModel, *, top_n: int = DEFAULT_TOP_N) -> None:
        self._orchestrator = orchestrator
        self._chat = chat
        self._top_n = top_n

    async def run(
        self,
        session_id: str,
        documents: Sequence[str],
        questions: Sequence[str],
        *,
        top_n: Optional[int] = None,
    ) -> List[ChecklistAnswer]:
        n = self._top_n if top_n is None else top_n

        async def body(ask: AskFn) -> List[ChecklistAnswer]:
            answers = []
            for question in questions:
                answers.append(await self.answer(ask, question, n))
            return answers

        return await self._orchestrator.with_session(session_id, documents, body)

    async def answer(self, ask: AskFn, question: str, top_n: int) -> ChecklistAnswer:
        hits = await ask(question, top_n)
        try:
            raw = await self._chat.ask(SYSTEM_PROMPT, build_user_prompt(question, hits))
        except Exception as e:
            logger.warning("Chat completion failed for checklist question %r: %s", question, e)
            answer, quote = FALLBACK_ANSWER, ""
        else:
            answer, quote = parse_answer(raw)

        return ChecklistAnswer(
            question=question,
            answer=answer,
            quote=finalize_quote(quote, hits),
            source_url=hits[0].source_url if hits else None,
        )
