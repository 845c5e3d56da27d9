"""Resolve a message to the handler script that should run for it."""

import re
from collections.abc import Mapping
from pathlib import Path

HANDLER_NAME_PATTERN = re.compile(r"[A-Za-z0-9]+")


def is_valid_handler_name(name: str) -> bool:
    """Return True if name is a non-empty run of ASCII letters and digits."""
    return HANDLER_NAME_PATTERN.fullmatch(name) is not None


def resolve(headers: Mapping[str, str], handler_key: str, script_root: str | Path) -> Path | None:
    """Return the script path named by ``headers[handler_key]``.

    Returns None when the key is absent or the name is not alphanumeric. The
    allow-list rules out separators and ``..`` so the result always sits
    directly under script_root. The filesystem is not consulted.
    """
    name = headers.get(handler_key)
    if name is None or not is_valid_handler_name(name):
        return None
    return Path(script_root) / name
