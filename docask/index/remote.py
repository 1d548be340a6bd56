"""Thin wrapper over the OpenAI vector-store, files and assistants APIs."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from openai import NotFoundError, OpenAI

logger = logging.getLogger("docask.index.remote")

FILE_PURPOSE = "assistants"


class RemovalOutcome(str, Enum):
    """Result of taking a file out of the remote index."""

    REMOVED = "removed"
    MISSING = "missing"
    REMOTE_ALREADY_ABSENT = "remote_already_absent"


class RemoteIndexClient:
    """Remote index operations used by the sync and question-answer flows.

    One instance is built per CLI invocation and handed to the components
    that need it.
    """

    def __init__(self, client: Any):
        self._client = client

    @classmethod
    def from_api_key(cls, api_key: str, **kwargs: Any) -> "RemoteIndexClient":
        logger.debug("OpenAI client initialized")
        return cls(OpenAI(api_key=api_key, **kwargs))

    # Vector store -------------------------------------------------------

    def create_store(self, name: str, expires_after_days: Optional[int] = None) -> str:
        params: dict[str, Any] = {"name": name}
        if expires_after_days:
            params["expires_after"] = {"anchor": "last_active_at", "days": expires_after_days}
        store = self._client.vector_stores.create(**params)
        logger.info("Created vector store '%s' (%s)", name, store.id)
        return store.id

    def upload(self, path: Path) -> str:
        with open(path, "rb") as fh:
            uploaded = self._client.files.create(file=fh, purpose=FILE_PURPOSE)
        logger.debug("Uploaded %s as %s", path, uploaded.id)
        return uploaded.id

    def link(self, store_id: str, file_id: str) -> str:
        link = self._client.vector_stores.files.create(
            vector_store_id=store_id,
            file_id=file_id,
        )
        logger.debug("Linked %s into %s", file_id, store_id)
        return link.id

    def unlink(self, store_id: str, file_id: str) -> RemovalOutcome:
        try:
            self._client.vector_stores.files.delete(file_id, vector_store_id=store_id)
        except NotFoundError:
            logger.debug("File %s was already absent from %s", file_id, store_id)
            return RemovalOutcome.REMOTE_ALREADY_ABSENT
        logger.debug("Unlinked %s from %s", file_id, store_id)
        return RemovalOutcome.REMOVED

    def delete_file(self, file_id: str) -> RemovalOutcome:
        try:
            self._client.files.delete(file_id)
        except NotFoundError:
            return RemovalOutcome.REMOTE_ALREADY_ABSENT
        logger.debug("Deleted uploaded file %s", file_id)
        return RemovalOutcome.REMOVED

    # Question answering -------------------------------------------------

    def create_assistant(self, name: str, model: str, store_id: str) -> str:
        assistant = self._client.beta.assistants.create(
            name=name,
            model=model,
            instructions=(
                "Answer questions using the attached documentation. "
                "Say so when the documentation does not cover the question."
            ),
            tools=[{"type": "file_search"}],
            tool_resources={"file_search": {"vector_store_ids": [store_id]}},
        )
        logger.info("Created assistant '%s' (%s)", name, assistant.id)
        return assistant.id

    def create_thread(self) -> str:
        return self._client.beta.threads.create().id

    def add_message(self, thread_id: str, text: str) -> None:
        self._client.beta.threads.messages.create(
            thread_id=thread_id,
            role="user",
            content=text,
        )

    def start_run(self, thread_id: str, assistant_id: str) -> str:
        run = self._client.beta.threads.runs.create(
            thread_id=thread_id,
            assistant_id=assistant_id,
        )
        return run.id

    def poll_run(self, thread_id: str, run_id: str) -> str:
        run = self._client.beta.threads.runs.retrieve(run_id, thread_id=thread_id)
        return run.status

    def list_messages(self, thread_id: str) -> List[str]:
        """Return assistant replies on the thread, newest first."""
        page = self._client.beta.threads.messages.list(thread_id=thread_id, order="desc")
        replies: List[str] = []
        for message in page.data:
            if message.role != "assistant":
                continue
            parts = [
                block.text.value
                for block in message.content
                if getattr(block, "type", None) == "text"
            ]
            if parts:
                replies.append("\n".join(parts))
        return replies


__all__ = ["RemoteIndexClient", "RemovalOutcome"]
