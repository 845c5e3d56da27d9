"""The dispatch loop: turn queue messages into handler script runs.

For every delivered message the dispatcher resolves the handler named in the
headers, runs it with the headers exported as ``HARE_VAR_*`` variables, logs
what happened and acknowledges the message. Acknowledgment does not depend
on how the script fared: a message is never redelivered because a script is
missing or failed, since running it again would not help. Only a queue
transport failure stops the loop.
"""

import logging
import threading
from collections.abc import Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from hare import handler_resolver
from hare.errors import InvocationError, QueueConnectionError
from hare.header_mapper import build_environment
from hare.persist_base import PersistBase
from hare.process_invoker import ProcessInvoker, SubprocessInvoker
from hare.queue_model_dto import Message

logger = logging.getLogger(__name__)


class DispatchState(Enum):
    CONNECTING = "connecting"
    CONSUMING = "consuming"
    SHUTTING_DOWN = "shutting_down"


@dataclass(frozen=True)
class Skipped:
    """No valid handler name was found; nothing was run."""

    reason: str
    handler: str | None = None


@dataclass(frozen=True)
class Invoked:
    """The handler ran to completion with the given exit status."""

    handler: str
    script_path: Path
    exit_status: int


@dataclass(frozen=True)
class InvocationFailed:
    """The handler could not be started."""

    handler: str
    script_path: Path
    reason: str


DispatchOutcome = Skipped | Invoked | InvocationFailed


def should_acknowledge(outcome: DispatchOutcome) -> bool:
    """Return whether a message with this outcome is acknowledged.

    Always True: every outcome is final for the message.
    """
    return isinstance(outcome, (Skipped, Invoked, InvocationFailed))


def dispatch_message(
    headers: Mapping[str, str],
    handler_key: str,
    script_root: str | Path,
    invoker: ProcessInvoker,
) -> DispatchOutcome:
    """Resolve, build the environment and invoke the handler for one set of headers."""
    script_path = handler_resolver.resolve(headers, handler_key, script_root)
    if script_path is None:
        handler = headers.get(handler_key)
        if handler is None:
            return Skipped(reason=f"no {handler_key!r} header")
        return Skipped(reason="handler name is not alphanumeric", handler=handler)

    handler = script_path.name
    env_overlay = build_environment(headers)
    try:
        exit_status = invoker.invoke(script_path, env_overlay)
    except InvocationError as e:
        return InvocationFailed(handler=handler, script_path=script_path, reason=e.reason)
    return Invoked(handler=handler, script_path=script_path, exit_status=exit_status)


def log_outcome(message: Message, outcome: DispatchOutcome) -> None:
    """Emit one log event describing the outcome of a message."""
    event = {
        "delivery_tag": message.delivery_tag,
        "read_count": message.read_count,
        "handler": getattr(outcome, "handler", None),
        "script_path": str(outcome.script_path) if hasattr(outcome, "script_path") else "none",
    }
    match outcome:
        case Skipped(reason=reason):
            event["skipped"] = reason
            logger.info(
                "Message %s skipped, handler not found/invalid: %s",
                message.delivery_tag,
                reason,
                extra={"dispatch": event},
            )
        case Invoked(handler=handler, script_path=script_path, exit_status=exit_status):
            event["exit_status"] = exit_status
            level = logging.INFO if exit_status == 0 else logging.WARNING
            logger.log(
                level,
                "Handler %s (%s) exited with status %d",
                handler,
                script_path,
                exit_status,
                extra={"dispatch": event},
            )
        case InvocationFailed(handler=handler, script_path=script_path, reason=reason):
            event["error"] = reason
            logger.error(
                "Handler %s (%s) could not be started: %s",
                handler,
                script_path,
                reason,
                extra={"dispatch": event},
            )


class Dispatcher:
    """Consumes one queue and runs a handler script per message.

    With max_concurrency of 1 messages are handled strictly one after the
    other. A higher value runs up to that many scripts at once on a thread
    pool; receiving pauses while all slots are busy, and each message is
    acknowledged once its own script has finished.
    """

    def __init__(
        self,
        queue_repo: PersistBase,
        queue_name: str,
        script_root: str | Path,
        handler_key: str = "type",
        invoker: ProcessInvoker | None = None,
        max_concurrency: int = 1,
        visibility_timeout: int = 300,
        poll_seconds: int = 5,
        delete_messages: bool = False,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.queue_repo = queue_repo
        self.queue_name = queue_name
        self.script_root = Path(script_root)
        self.handler_key = handler_key
        self.invoker = invoker or SubprocessInvoker()
        self.max_concurrency = max_concurrency
        self.receive_options = {"visibility_timeout": visibility_timeout, "poll_seconds": poll_seconds}
        self.delete_messages = delete_messages
        self.state = DispatchState.CONNECTING
        self._ack_lock = threading.Lock()

    @classmethod
    def from_settings(cls, queue_repo: PersistBase, settings, invoker: ProcessInvoker | None = None) -> "Dispatcher":
        """Build a dispatcher from a Settings instance."""
        return cls(
            queue_repo,
            queue_name=settings.queue_name,
            script_root=settings.script_root,
            handler_key=settings.handler_key,
            invoker=invoker,
            max_concurrency=settings.max_concurrency,
            visibility_timeout=settings.visibility_timeout,
            poll_seconds=settings.poll_seconds,
            delete_messages=settings.delete_messages,
        )

    def handle(self, message: Message) -> DispatchOutcome:
        """Dispatch one message, log the outcome and acknowledge it."""
        outcome = dispatch_message(message.headers, self.handler_key, self.script_root, self.invoker)
        log_outcome(message, outcome)
        if should_acknowledge(outcome):
            with self._ack_lock:
                self.queue_repo.acknowledge(self.queue_name, message.delivery_tag, delete=self.delete_messages)
        return outcome

    def run(self, max_messages: int | None = None) -> int:
        """Consume messages until max_messages have been handled or the transport fails.

        Returns the number of messages handled. QueueConnectionError is
        raised if the queue is missing or the connection is lost.
        """
        self.state = DispatchState.CONNECTING
        logger.info("Connecting to queue %s", self.queue_name)
        try:
            if self.queue_name not in self.queue_repo.list_queues():
                raise QueueConnectionError(f"Queue {self.queue_name} does not exist")

            self.state = DispatchState.CONSUMING
            logger.info(
                "Consuming %s, scripts in %s, handler header %r",
                self.queue_name,
                self.script_root,
                self.handler_key,
            )
            if self.max_concurrency == 1:
                return self._run_sequential(max_messages)
            return self._run_concurrent(max_messages)
        finally:
            self.state = DispatchState.SHUTTING_DOWN
            logger.info("Stopped consuming %s", self.queue_name)

    def _receive(self) -> Message | None:
        return self.queue_repo.receive(self.queue_name, options=self.receive_options)

    def _run_sequential(self, max_messages: int | None) -> int:
        handled = 0
        while max_messages is None or handled < max_messages:
            message = self._receive()
            if message is None:
                continue
            self.handle(message)
            handled += 1
        return handled

    def _run_concurrent(self, max_messages: int | None) -> int:
        slots = threading.BoundedSemaphore(self.max_concurrency)
        pending: set[Future] = set()
        handled = 0

        def work(message: Message) -> DispatchOutcome:
            try:
                return self.handle(message)
            finally:
                slots.release()

        with ThreadPoolExecutor(max_workers=self.max_concurrency, thread_name_prefix="hare") as pool:
            try:
                while max_messages is None or handled < max_messages:
                    slots.acquire()
                    try:
                        message = self._receive()
                    except BaseException:
                        slots.release()
                        raise
                    if message is None:
                        slots.release()
                        continue
                    pending.add(pool.submit(work, message))
                    handled += 1
                    pending = _reap(pending)
            finally:
                wait(pending)
        _reap(pending)
        return handled


def _reap(futures: set[Future]) -> set[Future]:
    """Drop finished futures, re-raising the first failure among them."""
    if not futures:
        return futures
    done, not_done = wait(futures, timeout=0, return_when=FIRST_COMPLETED)
    for future in done:
        future.result()
    return not_done
