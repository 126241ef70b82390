"""Azure CLI helpers."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable

logger = logging.getLogger(__name__)

CLI_NOT_INSTALLED = "CLI_NOT_INSTALLED"
TIMEOUT = "TIMEOUT"

# (args without the "az" prefix, timeout) -> (success, output or error)
AzCommandRunner = Callable[[list[str], int], tuple[bool, str]]


def run_az_command(args: list[str], timeout: int = 30) -> tuple[bool, str]:
    """Run an Azure CLI command and return (success, output/error).

    Args:
        args: Command arguments (without 'az' prefix).
        timeout: Command timeout in seconds.

    Returns:
        Tuple of (success, output_or_error_message).
    """
    logger.debug("Running az %s", " ".join(args[:4]))
    try:
        result = subprocess.run(
            ["az"] + args,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        return False, CLI_NOT_INSTALLED
    except subprocess.TimeoutExpired:
        return False, TIMEOUT
    except OSError as exc:
        return False, str(exc)

    if result.returncode == 0:
        return True, result.stdout
    return False, result.stderr
