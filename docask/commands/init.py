"""Command that creates the remote vector store for this project."""

from __future__ import annotations

from typing import List

from ..configuration import STORE_ID_ENV, save_configuration
from ..router import Command, CommandContext


def _handler(context: CommandContext, args: List[str]) -> str:
    """Create the vector store and assistant unless one is already configured."""

    settings = context.settings
    if settings.vector_store_id:
        return f"[init] Using existing vector store {settings.vector_store_id}."

    remote = context.remote()
    retry = context.retry_executor()

    store_id = retry.call(
        remote.create_store,
        settings.name,
        settings.expires_after_days,
        description="create vector store",
    )
    assistant_id = retry.call(
        remote.create_assistant,
        settings.name,
        settings.model,
        store_id,
        description="create assistant",
    )

    lines = [f"[init] Created vector store '{settings.name}' ({store_id})."]
    if settings.expires_after_days:
        lines.append(f"  Expires after {settings.expires_after_days} idle day(s).")
    lines.append(f"  Assistant: {assistant_id}")

    saved = save_configuration(
        context.config,
        {"vector_store_id": store_id, "assistant_id": assistant_id},
    )
    if saved:
        lines.append(f"  Saved to {context.config.config_path}")
    else:
        lines.append(
            "  Could not write the configuration file; "
            f"export {STORE_ID_ENV}={store_id} to keep using this store."
        )
    return "\n".join(lines)


COMMAND = Command(
    name="init",
    description="Create the vector store and record its id in .docask.yml.",
    handler=_handler,
    usage="init",
    requires_ready=True,
)
