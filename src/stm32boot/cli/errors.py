"""
CLI Error Handling
==================

Maps package exceptions to exit codes and user-facing messages.
"""

import sys
import traceback
from enum import IntEnum
from typing import NoReturn

import click


class ExitCode(IntEnum):
    """Exit codes of the stm32boot tool."""
    SUCCESS = 0
    OPERATION_FAILED = 1    # Device refused a command or a range check failed
    INVALID_ARGS = 2        # Invalid arguments
    INTERNAL_ERROR = 3      # Unexpected internal error
    DEVICE_ERROR = 4        # No bootloader, bus failure, unsupported erase
    IMAGE_OPEN_ERROR = 5    # Image or dump file cannot be opened
    IMAGE_MEMORY_ERROR = 6  # Image does not fit in memory
    IMAGE_READ_ERROR = 7    # Short read of the image file


def exit_code_for(error: Exception) -> ExitCode:
    """Return the exit code used for an exception."""
    from stm32boot.errors import (
        CommsError,
        ImageMemoryError,
        ImageOpenError,
        ImageReadError,
        Stm32BootError,
        UnsupportedEraseError,
    )

    if isinstance(error, ImageOpenError):
        return ExitCode.IMAGE_OPEN_ERROR
    if isinstance(error, ImageMemoryError):
        return ExitCode.IMAGE_MEMORY_ERROR
    if isinstance(error, ImageReadError):
        return ExitCode.IMAGE_READ_ERROR
    if isinstance(error, (CommsError, UnsupportedEraseError)):
        return ExitCode.DEVICE_ERROR
    if isinstance(error, Stm32BootError):
        return ExitCode.OPERATION_FAILED
    if isinstance(error, (click.BadParameter, ValueError)):
        return ExitCode.INVALID_ARGS
    return ExitCode.INTERNAL_ERROR


def handle_cli_exception(
    error: Exception,
    verbose: bool = False,
    error_type: str | None = None
) -> NoReturn:
    """
    Report an exception and exit with the matching exit code.

    Args:
        error: The exception that was raised
        verbose: If True, print full traceback for internal errors
        error_type: Optional prefix for the error message (e.g., "Device")

    Raises:
        SystemExit: Always exits with an appropriate exit code
    """
    code = exit_code_for(error)

    if code == ExitCode.INTERNAL_ERROR:
        click.echo(f"Internal error: {error}", err=True)
        if verbose:
            traceback.print_exc()
    else:
        prefix = f"{error_type} error: " if error_type else "Error: "
        click.echo(f"{prefix}{error}", err=True)

    sys.exit(code)
