"""
Run a command with a vault's secrets injected into its environment
"""

from __future__ import annotations

import logging
import os
import subprocess
from typing import Dict, Mapping, Optional, Sequence, Union

from .exceptions import CommandError

logger = logging.getLogger(__name__)


def child_environment(
    secrets: Mapping[str, Union[str, bytes]],
    clean_env: bool = False,
    base: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Environment for the child process.

    Secrets override inherited variables of the same name. With
    ``clean_env`` nothing is inherited and the child sees only the secrets.
    """
    env = {} if clean_env else dict(os.environ if base is None else base)
    for name, value in secrets.items():
        if isinstance(value, (bytes, bytearray)):
            try:
                value = bytes(value).decode("utf-8")
            except UnicodeDecodeError:
                raise CommandError(f"secret '{name}' is not valid UTF-8 and cannot be injected") from None
        if "\x00" in value:
            raise CommandError(f"secret '{name}' contains a NUL byte and cannot be injected")
        env[name] = value
    return env


def run_with_secrets(
    command: Sequence[str],
    secrets: Mapping[str, Union[str, bytes]],
    clean_env: bool = False,
) -> int:
    """
    Run ``command`` with ``secrets`` in its environment and wait for it.

    Returns the child's exit code; a negative code means it was killed by
    that signal (POSIX).
    """
    if not command:
        raise CommandError("no command specified")

    env = child_environment(secrets, clean_env=clean_env)
    logger.info(
        "injecting %d secrets into %s environment for %s",
        len(secrets),
        "a clean" if clean_env else "the inherited",
        command[0],
    )
    try:
        completed = subprocess.run(list(command), env=env, check=False)
    except OSError as e:
        raise CommandError(f"failed to start {command[0]}: {e}") from e
    finally:
        env.clear()

    if completed.returncode != 0:
        logger.info("%s exited with status %d", command[0], completed.returncode)
    return completed.returncode
