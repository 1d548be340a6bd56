"""Question answering against the synced vector store."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from .remote import RemoteIndexClient
from .retry import RetryExecutor

logger = logging.getLogger("docask.index.answer")

TERMINAL_STATUSES = {"completed", "failed", "cancelled", "expired", "incomplete"}


class AnswerError(RuntimeError):
    """The remote run ended without producing an answer."""


@dataclass
class Answer:
    question: str
    text: str
    thread_id: str
    run_id: str


class QuestionAnswerer:
    """Creates a thread, runs the assistant on it and waits for the reply."""

    def __init__(
        self,
        remote: RemoteIndexClient,
        retry: RetryExecutor,
        assistant_id: str,
        poll_interval: float = 1.0,
        timeout: float = 120.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.remote = remote
        self.retry = retry
        self.assistant_id = assistant_id
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock

    def ask(self, question: str) -> Answer:
        question = question.strip()
        if not question:
            raise ValueError("question must not be empty")

        thread_id = self.retry.call(self.remote.create_thread, description="create thread")
        self.retry.call(
            self.remote.add_message,
            thread_id,
            question,
            description="post question",
        )
        run_id = self.retry.call(
            self.remote.start_run,
            thread_id,
            self.assistant_id,
            description="start run",
        )
        logger.info("Started run %s on thread %s", run_id, thread_id)

        status = self._wait_for_run(thread_id, run_id)
        if status != "completed":
            raise AnswerError(f"Run {run_id} finished with status '{status}'")

        replies = self.retry.call(
            self.remote.list_messages,
            thread_id,
            description="list messages",
        )
        if not replies:
            raise AnswerError(f"Run {run_id} completed without an assistant reply")
        return Answer(question=question, text=replies[0], thread_id=thread_id, run_id=run_id)

    def _wait_for_run(self, thread_id: str, run_id: str) -> str:
        deadline = self._clock() + self.timeout
        while True:
            status = self.retry.call(
                self.remote.poll_run,
                thread_id,
                run_id,
                description="poll run",
            )
            logger.debug("Run %s status: %s", run_id, status)
            if status in TERMINAL_STATUSES:
                return status
            if status == "requires_action":
                # file_search needs no client-side tool output.
                return status
            if self._clock() >= deadline:
                raise AnswerError(
                    f"Run {run_id} did not finish within {self.timeout:.0f}s (last status '{status}')"
                )
            self._sleep(self.poll_interval)


__all__ = ["Answer", "AnswerError", "QuestionAnswerer", "TERMINAL_STATUSES"]
