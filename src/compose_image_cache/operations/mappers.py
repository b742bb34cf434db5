"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and CLI command wrappers
to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import logging
from typing import Callable, TypeVar

import typer

T = TypeVar('T')

logger = logging.getLogger(__name__)

EXIT_CODES = {
    "ComposeFileNotFoundError": 2,
    "NoComposeFilesError": 2,
    "ComposeParseError": 2,
    "UnmappablePlatformError": 2,
    "ValueError": 2,
    "DigestResolutionError": 3,
    "ToolInstallError": 4,
    "IncompleteRunError": 5,
}


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    Returns:
    - 0: Success (including runs where some images failed, unless --strict)
    - 1: Unexpected error
    - 2: Invalid input (compose files, settings, host platform)
    - 3: Registry lookup failed outside a run (DigestResolutionError, `key` command)
    - 4: Required tool unavailable (ToolInstallError)
    - 5: Strict mode and at least one image failed (IncompleteRunError)

    Args:
        exc: Exception to map

    Returns:
        Exit code, with 1 as fallback for unknown exceptions
    """
    return EXIT_CODES.get(type(exc).__name__, 1)


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exceptions to appropriate
    exit codes using typer.Exit. This centralizes error handling so
    CLI commands don't need individual try/except blocks.

    Args:
        func: Function to execute

    Returns:
        Function result if successful

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except typer.Exit:
        raise
    except Exception as e:
        code = exit_code_for(e)
        if code == 1:
            logger.exception("Unexpected error")
        else:
            logger.error(str(e))
        raise typer.Exit(code=code) from e
