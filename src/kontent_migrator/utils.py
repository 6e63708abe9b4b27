"""
Utility functions for the Kontent.ai content-type migration tool.
"""

from __future__ import annotations

import logging
import re
import subprocess
from subprocess import CompletedProcess


_PASS_PATH = re.compile(r"[A-Za-z0-9_-]+(?:/[A-Za-z0-9_-]+)*")


class PassError(Exception):
    """An API key could not be read from the pass store."""


class InvalidPassPathError(PassError):
    """The pass path is malformed or has no entry in the store."""


def setup_logging(*, verbose: bool = False, log_file: str | None = "migration.log") -> None:
    """Configure logging for the migration process."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
    # Request-level chatter from urllib3 drowns the migration log at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_pass_value(pass_path: str) -> str:
    """Read an API key from the pass store.

    Only the first line of the entry is the key; pass entries often carry
    notes below it. The GPG agent must already hold the passphrase, a
    migration run never prompts for it.

    Raises:
        InvalidPassPathError: The path is malformed or not in the store
        PassError: pass is unavailable, the key is locked or the entry is empty
    """
    if not _PASS_PATH.fullmatch(pass_path):
        msg = f"Invalid pass path: {pass_path}"
        raise InvalidPassPathError(msg)

    try:
        result: CompletedProcess[str] = subprocess.run(  # noqa: S603
            ["pass", "show", pass_path], capture_output=True, text=True, check=True, stdin=subprocess.DEVNULL
        )
    except FileNotFoundError as e:
        msg = "The pass utility is not installed"
        raise PassError(msg) from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        if "not in the password store" in stderr.lower():
            msg = f"No API key stored at pass path '{pass_path}'"
            raise InvalidPassPathError(msg) from e
        if "decryption failed" in stderr.lower():
            msg = f"The GPG key for '{pass_path}' is locked; unlock it with `pass show {pass_path}` and rerun"
            raise PassError(msg) from e
        msg = f"Failed to read '{pass_path}' from pass (return code {e.returncode}): {stderr}"
        raise PassError(msg) from e

    lines = result.stdout.splitlines()
    key = lines[0].strip() if lines else ""
    if not key:
        msg = f"Pass entry '{pass_path}' is empty"
        raise PassError(msg)
    return key
