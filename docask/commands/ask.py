"""Command that answers a question from the indexed documentation."""

from __future__ import annotations

from typing import List

from ..configuration import save_configuration
from ..index import AnswerError, QuestionAnswerer
from ..router import EXIT_FAILURES, EXIT_USAGE, Command, CommandContext, CommandResult


def _ensure_assistant(context: CommandContext, store_id: str) -> str:
    settings = context.settings
    if settings.assistant_id:
        return settings.assistant_id

    assistant_id = context.retry_executor().call(
        context.remote().create_assistant,
        settings.name,
        settings.model,
        store_id,
        description="create assistant",
    )
    save_configuration(context.config, {"assistant_id": assistant_id})
    return assistant_id


def _handler(context: CommandContext, args: List[str]) -> CommandResult:
    """Ask a question against the configured vector store."""

    question = " ".join(args).strip()
    if not question:
        return CommandResult('[ask] Usage: docask ask "<question>"', EXIT_USAGE)

    store_id = context.settings.require_store_id()
    answerer = QuestionAnswerer(
        remote=context.remote(),
        retry=context.retry_executor(),
        assistant_id=_ensure_assistant(context, store_id),
    )
    try:
        answer = answerer.ask(question)
    except AnswerError as e:
        return CommandResult(f"[ask] {e}", EXIT_FAILURES)
    return CommandResult(answer.text)


COMMAND = Command(
    name="ask",
    description="Answer a question using the synced documentation.",
    handler=_handler,
    usage='ask "<question>"',
    requires_ready=True,
)
