"""PostgreSQL-backed queue persistence using PGMQ.

Uses the pgmq library to store queues and messages in PostgreSQL with
visibility timeouts, archiving, and metrics. Each queue message carries a
JSON envelope (see EnvelopeDTO) whose headers drive the dispatcher.
"""

import logging
import os
import time
from contextlib import contextmanager
from urllib.parse import urlparse

import psycopg
from pgmq import Message as PGMQMessage
from pgmq import PGMQueue
from pydantic import PostgresDsn, ValidationError

from hare.errors import ConfigurationError, QueueConnectionError
from hare.header_values import to_string_headers
from hare.persist_base import PersistBase
from hare.queue_model_dto import EnvelopeDTO, Message

logger = logging.getLogger(__name__)


@contextmanager
def transport_errors(action: str):
    """Re-raise database errors as QueueConnectionError."""
    try:
        yield
    except psycopg.Error as e:
        raise QueueConnectionError(f"{action} failed: {e}") from e


def to_message(raw: PGMQMessage) -> Message:
    """Decode a PGMQ row into a dispatcher Message.

    A payload that is not a valid envelope is delivered with no headers, so
    the dispatcher skips it instead of stalling on it.
    """
    try:
        envelope = EnvelopeDTO.model_validate(raw.message)
    except ValidationError as e:
        logger.warning("Message %s is not a valid envelope: %s", raw.msg_id, e)
        return Message(headers={}, body=raw.message, delivery_tag=raw.msg_id, read_count=raw.read_ct)
    return Message(
        headers=to_string_headers(envelope.headers),
        body=envelope.body,
        delivery_tag=raw.msg_id,
        read_count=raw.read_ct,
    )


class PersistPGMQ(PersistBase):
    """Queue persistence implementation using PGMQ (PostgreSQL Message Queue).

    Connects via a Postgres DSN and delegates to PGMQueue for create, send,
    read, archive, delete, and metrics. Supports partitioned queues via
    create_queue options.
    """

    def __init__(self, dsn: PostgresDsn | str | None = None) -> None:
        """Connect to PostgreSQL using the given DSN or the PGMQ_DSN environment variable."""
        raw = dsn or os.getenv("PGMQ_DSN", None)
        if not raw:
            raise ConfigurationError("No DSN provided and PGMQ_DSN environment variable is not set")
        parts = urlparse(str(raw))

        # noinspection PyTypeChecker
        with transport_errors("connect"):
            self.queue = PGMQueue(
                host=parts.hostname,
                port=parts.port,
                database=parts.path.lstrip("/"),
                username=parts.username,
                password=parts.password,
            )

    def enqueue(self, message: EnvelopeDTO) -> int:
        """Append the message to the queue named in message.meta.queue_name. Returns message ID."""
        payload = message.model_dump()
        with transport_errors(f"send to {message.meta.queue_name}"):
            message_id = self.queue.send(
                queue=message.meta.queue_name,
                message=payload,
            )
        return message_id

    def receive(self, queue_name: str, options: dict[str, any] | None = None) -> Message | None:
        """Poll until a message is available, then return it.

        Options: visibility_timeout (seconds, default 300), poll_seconds
        (length of one server-side poll, default 5) and timeout (give up and
        return None after this many seconds; default wait forever).
        """
        options = options or {}
        visibility_timeout = options.get("visibility_timeout", 300)
        poll_seconds = options.get("poll_seconds", 5)
        timeout = options.get("timeout")
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            with transport_errors(f"read from {queue_name}"):
                messages = self.queue.read_with_poll(
                    queue=queue_name,
                    vt=visibility_timeout,
                    qty=1,
                    max_poll_seconds=poll_seconds,
                )
            if messages:
                return to_message(messages[0])
            if deadline is not None and time.monotonic() >= deadline:
                return None

    def delete(self, queue_name: str, id: int) -> None:
        """Permanently delete the message with the given ID from the queue."""
        with transport_errors(f"delete {id} from {queue_name}"):
            self.queue.delete(
                queue=queue_name,
                msg_id=id,
            )

    def archive(self, queue_name: str, id: int) -> None:
        """Move the message from the main queue to the archive."""
        with transport_errors(f"archive {id} in {queue_name}"):
            self.queue.archive(
                queue=queue_name,
                msg_id=id,
            )

    def create_queue(self, queue_name: str, options: dict[str, any] | None = None) -> None:
        """Create a new queue; options may enable partitioning (interval, retention)."""
        options = options or {}
        with transport_errors(f"create {queue_name}"):
            if options.get("partition", "false").lower() == "true":
                self.queue.create_partitioned_queue(
                    queue_name,
                    partitions_interval=int(options.get("interval", 1000)),
                    retention_interval=int(options.get("retention", 1000000)),
                )
                return
            self.queue.create_queue(queue_name)

    def destroy_queue(self, queue_name: str) -> None:
        """Drop the queue and its data."""
        with transport_errors(f"drop {queue_name}"):
            self.queue.drop_queue(queue_name)

    def purge_queue(self, queue_name: str) -> int:
        """Remove all messages from the specified queue."""
        with transport_errors(f"purge {queue_name}"):
            purged_count = self.queue.purge(queue_name)
        return purged_count

    def list_queues(self) -> list[str]:
        """List all existing queues."""
        with transport_errors("list queues"):
            return self.queue.list_queues()

    def metrics(self, queue_name: str) -> dict:
        """Get metrics for the specified queue."""
        with transport_errors(f"metrics for {queue_name}"):
            return self.queue.metrics(queue_name)

    def close(self) -> None:
        """Close the connection pool; call when done to avoid shutdown warnings."""
        if hasattr(self.queue, "pool") and self.queue.pool:
            self.queue.pool.close()
