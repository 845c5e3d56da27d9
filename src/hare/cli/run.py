"""Run the dispatcher against a queue.

This module provides the CLI that consumes a queue and, for every message,
runs the handler script named by its headers. Options override the
``HARE_*`` environment settings. The command exits non-zero only when the
queue connection is lost (or never established); failing scripts are logged
and their messages acknowledged.
"""

from typing import Any

import click

from hare.cli.options import get_dsn
from hare.config import get_settings
from hare.dispatch import Dispatcher
from hare.errors import HareError
from hare.logging_config import configure_logging
from hare.persist_pgmq import PersistPGMQ as QueueRepository


@click.command()
@click.option("--dsn", type=str, required=False, help="The DSN of the database to use")
@click.option("--queue-name", type=str, default=None, help="The queue to consume [HARE_QUEUE, default: deploy]")
@click.option(
    "--script-root",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory holding the handler scripts [HARE_SCRIPT_ROOT, default: /etc/hare/scripts]",
)
@click.option("--handler-key", type=str, default=None, help="Header naming the handler [HARE_HANDLER_KEY, default: type]")
@click.option(
    "--log-destination",
    type=str,
    default=None,
    help="File to log dispatch events to, '-' for stdout [HARE_LOG_DESTINATION]",
)
@click.option("--log-level", type=str, default=None, help="Log level [HARE_LOG_LEVEL, default: DEBUG]")
@click.option(
    "--max-concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of handler scripts running at once [HARE_MAX_CONCURRENCY, default: 1]",
)
@click.option(
    "--visibility-timeout",
    type=click.IntRange(min=1),
    default=None,
    help="Visibility timeout in seconds for received messages, longer than any script runs",
)
@click.option("--poll-seconds", type=click.IntRange(min=1), default=None, help="Length of one queue poll in seconds")
@click.option(
    "--delete-messages/--archive-messages",
    default=None,
    help="Delete messages once handled instead of archiving them",
)
@click.option(
    "--max-messages",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many messages, default is to run until the connection is lost",
)
def main(**kwargs: Any) -> None:
    """Dispatch messages from a queue to handler scripts.

    The script ``<script-root>/<value of the handler header>`` is run for
    each message, with every header exported as ``HARE_VAR_<HEADER>``.
    Handler names must be alphanumeric; other messages are skipped.
    """
    max_messages = kwargs.pop("max_messages")
    kwargs["dsn"] = get_dsn(kwargs["dsn"])

    try:
        settings = get_settings(**kwargs)
        configure_logging(settings.log_destination, settings.log_level)
    except (HareError, OSError, ValueError) as e:
        raise click.ClickException(f"Configuration error: {e}") from e

    click.echo(f"Dispatching queue {settings.queue_name} to scripts in {settings.script_root}")
    try:
        queue_repo = QueueRepository(dsn=settings.dsn)
    except HareError as e:
        raise click.ClickException(f"Queue connection failed: {e}") from e

    try:
        dispatcher = Dispatcher.from_settings(queue_repo, settings)
        handled = dispatcher.run(max_messages=max_messages)
    except HareError as e:
        raise click.ClickException(f"Queue connection lost: {e}") from e
    finally:
        queue_repo.close()
    click.secho(f"Handled {handled} messages", fg="green")


if __name__ == "__main__":
    main()
