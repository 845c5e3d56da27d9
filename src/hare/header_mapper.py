"""Map message headers onto handler environment variables."""

import string
from collections.abc import Mapping

ENV_PREFIX = "HARE_VAR_"

# ASCII-only so that e.g. "ß" is not expanded to "SS"
_ASCII_UPPER = str.maketrans(string.ascii_lowercase, string.ascii_uppercase)


def env_name(header_key: str) -> str:
    """Return the environment variable name for a header key."""
    return ENV_PREFIX + header_key.translate(_ASCII_UPPER)


def build_environment(headers: Mapping[str, str]) -> dict[str, str]:
    """Build the environment overlay for a message.

    Every header ``k: v`` becomes ``HARE_VAR_<K>=v``; values are passed
    through untouched. If two header keys uppercase to the same name the
    later one in iteration order wins.
    """
    return {env_name(key): value for key, value in headers.items()}
