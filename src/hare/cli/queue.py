"""Manage a queue.

CLI that creates, destroys or purges a queue, or prints its metrics
(e.g. message counts).
"""

import click
from icecream import ic

from hare.cli.options import get_dsn
from hare.errors import HareError
from hare.persist_pgmq import PersistPGMQ as QueueRepository

ACTIONS = ("create", "status", "destroy", "purge")


def queue_exists(queue_repo: QueueRepository, queue_name: str) -> bool:
    """Return True if the given queue exists in the repository."""
    return queue_name in queue_repo.list_queues()


@click.command()
@click.option("--queue-name", type=str, required=True, help="The name of the queue to act on")
@click.option("--dsn", type=str, required=False, help="The DSN of the database to use")
@click.option(
    "--action",
    type=click.Choice(ACTIONS),
    required=True,
    help="The action to perform on the queue",
)
def main(queue_name: str, dsn: str | None, action: str) -> None:
    """Create, inspect, destroy or purge the specified queue."""
    click.echo(f"Queue {queue_name} {action}")
    dsn = get_dsn(dsn)

    try:
        queue_repo = QueueRepository(dsn=dsn)
    except HareError as e:
        raise click.ClickException(f"Queue connection failed: {e}") from e

    try:
        match action:
            case "create":
                queue_repo.create_queue(queue_name)
                click.echo(f"Queue {queue_name} created")
            case "status":
                if not queue_exists(queue_repo, queue_name):
                    raise click.ClickException(f"Queue {queue_name} does not exist")
                metrics = queue_repo.metrics(queue_name)
                ic(metrics)
            case "destroy":
                queue_repo.destroy_queue(queue_name)
                click.echo(f"Queue {queue_name} destroyed")
            case "purge":
                purged_count = queue_repo.purge_queue(queue_name)
                click.echo(f"Queue {queue_name} purged ({purged_count} messages)")
    except HareError as e:
        raise click.ClickException(f"Queue {action} failed: {e}") from e
    finally:
        queue_repo.close()


if __name__ == "__main__":
    main()
