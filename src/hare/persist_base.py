"""Abstract base for queue persistence backends.

Defines the interface the dispatcher and the CLIs use: queue management,
publishing, blocking receive, acknowledgment and metrics. Implementations
(e.g. PersistPGMQ) provide the concrete transport.
"""

from abc import ABC, abstractmethod

from hare.queue_model_dto import EnvelopeDTO, Message


class PersistBase(ABC):
    """Abstract base class for queue persistence.

    Optional options dicts (e.g. visibility_timeout) are backend-specific.
    Transport failures surface as QueueConnectionError.
    """

    @abstractmethod
    def create_queue(self, queue_name: str, options: dict[str, any] | None = None) -> None:
        """Create a new queue if it does not exist. Options are backend-specific."""
        pass

    @abstractmethod
    def list_queues(self) -> list[str]:
        """Return the names of all existing queues."""
        pass

    @abstractmethod
    def destroy_queue(self, queue_name: str) -> None:
        """Delete the queue and its data."""
        pass

    @abstractmethod
    def purge_queue(self, queue_name: str) -> int:
        """Remove all messages from the queue. Returns the number purged."""
        pass

    @abstractmethod
    def enqueue(self, message: EnvelopeDTO) -> int:
        """Append a message to the queue named in its metadata. Returns the message ID."""
        pass

    @abstractmethod
    def receive(self, queue_name: str, options: dict[str, any] | None = None) -> Message | None:
        """Wait for the next message.

        Blocks until one arrives unless options carries a ``timeout`` in
        seconds, in which case None is returned when it runs out.
        """
        pass

    @abstractmethod
    def delete(self, queue_name: str, id: int) -> None:
        """Permanently delete the message with the given ID from the queue."""
        pass

    @abstractmethod
    def archive(self, queue_name: str, id: int) -> None:
        """Move the message from the main queue to the archive."""
        pass

    def acknowledge(self, queue_name: str, delivery_tag: int, delete: bool = False) -> None:
        """Mark a delivery as processed by archiving it, or deleting it if delete is set."""
        if delete:
            self.delete(queue_name, delivery_tag)
        else:
            self.archive(queue_name, delivery_tag)

    @abstractmethod
    def metrics(self, queue_name: str) -> dict:
        """Return metrics for the queue (e.g. total, visible, archived counts)."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the connection to the backend."""
        pass
