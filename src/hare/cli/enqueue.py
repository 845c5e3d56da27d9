"""Enqueue a message to a queue.

CLI that creates the queue if needed and sends a message with the given
headers (and optional JSON body) to it. Useful for triggering handlers by
hand: ``hare-enqueue --queue-name deploy --header type=deploy --header app=myapp``.
"""

import json

import click

from hare.cli.options import get_dsn, parse_header
from hare.errors import HareError
from hare.persist_pgmq import PersistPGMQ as QueueRepository
from hare.queue_model_dto import EnvelopeDTO


def queue_exists(queue_repo: QueueRepository, queue_name: str) -> bool:
    """Return True if the given queue exists in the repository."""
    return queue_name in queue_repo.list_queues()


def collect_headers(ctx: click.Context, param: click.Parameter, values: tuple[str, ...]) -> dict[str, str]:
    """Click callback turning repeated KEY=VALUE options into an ordered dict."""
    headers: dict[str, str] = {}
    for value in values:
        key, header_value = parse_header(value)
        headers[key] = header_value
    return headers


@click.command()
@click.option(
    "--queue-name",
    type=str,
    required=True,
    help="The name of the queue to enqueue the message to",
)
@click.option(
    "--header",
    "headers",
    type=str,
    multiple=True,
    callback=collect_headers,
    help="A KEY=VALUE message header, can be used multiple times",
)
@click.option("--body", type=str, required=False, help="The message body (JSON)")
@click.option("--dsn", type=str, required=False, help="The DSN of the database to use")
def main(queue_name: str, headers: dict[str, str], body: str | None, dsn: str | None) -> None:
    """Enqueue a message to the specified queue; creates the queue if it does not exist."""
    click.echo(f"queue-name: {queue_name}")
    click.echo(f"headers: {headers}")
    dsn = get_dsn(dsn)

    try:
        data = json.loads(body) if body is not None else None
    except json.JSONDecodeError as err:
        raise click.ClickException(f"Invalid JSON: {body}") from err

    try:
        queue_repo = QueueRepository(dsn=dsn)
    except HareError as e:
        raise click.ClickException(f"Queue connection failed: {e}") from e

    try:
        if not queue_exists(queue_repo, queue_name):
            try:
                queue_repo.create_queue(queue_name)
            except Exception as e:
                raise click.ClickException(f"Error creating queue: {e}") from e

        try:
            message_data = EnvelopeDTO(headers=headers, body=data, meta={"queue_name": queue_name})
            message_id = queue_repo.enqueue(message_data)
            click.echo(f"Message enqueued with ID: {message_id}")
        except Exception as e:
            raise click.ClickException(f"Error: {e}") from e
    except HareError as e:
        raise click.ClickException(f"Queue connection lost: {e}") from e
    finally:
        queue_repo.close()


if __name__ == "__main__":
    """Entry point for the enqueue CLI."""
    main()
