"""Run handler scripts as child processes.

The dispatcher only depends on ProcessInvoker, so tests can swap in a double
that records calls instead of spawning anything.
"""

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path

from hare.errors import InvocationError

logger = logging.getLogger(__name__)


class ProcessInvoker(ABC):
    """Runs a program and reports how it exited."""

    @abstractmethod
    def invoke(self, path: Path, env_overlay: Mapping[str, str]) -> int:
        """Run path with no arguments and wait for it.

        Returns the exit status. Raises InvocationError if the program could
        not be started at all.
        """
        pass


class SubprocessInvoker(ProcessInvoker):
    """Invoker backed by :func:`subprocess.run`.

    The child inherits this process's stdout and stderr and its environment,
    with env_overlay applied on top.
    """

    def invoke(self, path: Path, env_overlay: Mapping[str, str]) -> int:
        environment = os.environ.copy()
        environment.update(env_overlay)
        logger.debug("Spawning %s with %d HARE_VAR_ variables", path, len(env_overlay))
        try:
            completed = subprocess.run([str(path)], env=environment, check=False)
        except FileNotFoundError as e:
            if path.exists():
                # the script is there; its #! interpreter is not
                raise InvocationError(path, f"interpreter not found: {e}") from e
            raise InvocationError(path, "script not found") from e
        except PermissionError as e:
            raise InvocationError(path, "permission denied") from e
        except OSError as e:
            raise InvocationError(path, f"failed to spawn: {e}") from e
        except ValueError as e:
            # e.g. a header key containing "=" or a NUL byte
            raise InvocationError(path, f"invalid environment: {e}") from e
        return completed.returncode
