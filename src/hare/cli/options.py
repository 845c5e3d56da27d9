"""Helpers shared by the hare command line tools."""

import os

import click
import dotenv


def load_env_file() -> None:
    """Load a .env file from the working directory; variables already set win."""
    path = dotenv.find_dotenv(usecwd=True)
    if path:
        dotenv.load_dotenv(path)


def get_dsn(dsn: str | None) -> str:
    """Return dsn, falling back to HARE_DSN or PGMQ_DSN (a local .env file is loaded first)."""
    load_env_file()
    if dsn:
        return dsn
    dsn = os.getenv("HARE_DSN") or os.getenv("PGMQ_DSN")
    if not dsn:
        raise click.ClickException("No DSN provided and PGMQ_DSN environment variable is not set")
    return dsn


def parse_header(value: str) -> tuple[str, str]:
    """Split a KEY=VALUE option into its parts."""
    key, sep, header_value = value.partition("=")
    if not sep or not key:
        raise click.BadParameter(f"expected KEY=VALUE, got {value!r}")
    return key, header_value
