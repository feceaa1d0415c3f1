"""
stm32boot Error Hierarchy
=========================

This module defines the exception hierarchy for the whole package.
All exceptions inherit from Stm32BootError, allowing callers to catch
every package-related error with a single except clause if desired.

Exception Hierarchy
-------------------
Stm32BootError (base)
├── CommsError (bus communication)
│   ├── ConnectionError - bootloader not reachable / bus unavailable
│   ├── ProtocolError - command issued outside bootloader mode
│   └── TimeoutError - bounded ACK wait exhausted
├── FlashError (flash operations)
│   ├── AddressRangeError - address range outside flash
│   └── UnsupportedEraseError - erase mode other than global erase
└── ImageError (firmware image files)
    ├── ImageOpenError - cannot open the file
    ├── ImageMemoryError - cannot allocate the image buffer
    └── ImageReadError - short or failed read

Design Philosophy
-----------------
A NACK from the device is not an exception: commands report it through
their return value and the caller decides whether to continue. Exceptions
are reserved for conditions that end a run (no bootloader, unsupported
erase mode, unreadable image) or for callers that prefer raising range
checks.
"""

from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class Stm32BootError(Exception):
    """
    Base exception for all stm32boot errors.

    All exceptions in the package inherit from this class, allowing callers
    to catch all package errors with a single except clause:

        try:
            client.enter_bootloader()
        except Stm32BootError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Communication Exceptions
# =============================================================================

class CommsError(Stm32BootError):
    """Base exception for bus communication errors."""
    pass


class ConnectionError(CommsError):
    """
    Cannot talk to the bootloader.

    Raised when:
    - SPI device node not found or permission denied
    - Sync echo never received
    - Bootloader NACKs the synchronization frame
    """
    pass


class ProtocolError(CommsError):
    """
    Bootloader protocol error.

    Raised when a command is issued while the device session is not in
    bootloader mode (before synchronization, after a reset to user flash
    or after GO).
    """
    pass


class TimeoutError(CommsError):
    """
    ACK wait exhausted.

    Only raised when a poll limit is configured: the plain protocol has
    no timeout and waits for ACK/NACK forever.

    Note:
        This is a package-specific TimeoutError, distinct from the
        Python builtin TimeoutError. It inherits from CommsError
        for consistent error handling in the comms module.
    """

    def __init__(self, polls: int, message: str = ""):
        self.polls = polls
        if not message:
            message = f"No ACK/NACK after {polls} polls"
        super().__init__(message)


# =============================================================================
# Flash Exceptions
# =============================================================================

class FlashError(Stm32BootError):
    """Base exception for flash memory operations."""
    pass


class AddressRangeError(FlashError):
    """
    Address range outside the flash address space.

    Attributes:
        start: First address of the rejected range
        end: Last address (inclusive) of the rejected range
    """

    def __init__(self, start: int, end: int, message: str = ""):
        self.start = start
        self.end = end
        if not message:
            message = (
                f"Address range 0x{start:08X}-0x{end:08X} "
                "is outside flash memory"
            )
        super().__init__(message)


class UnsupportedEraseError(FlashError):
    """
    Erase mode other than global (mass) erase requested.

    Page and bank erase are not reliable with this bootloader over SPI,
    only the global erase code 0xFFFF is accepted.
    """

    def __init__(self, count: int, message: str = ""):
        self.count = count
        if not message:
            message = (
                f"Erase code 0x{count:04X} is not supported, "
                "use global erase instead"
            )
        super().__init__(message)


# =============================================================================
# Image File Exceptions
# =============================================================================

class ImageError(Stm32BootError):
    """
    Base exception for firmware image file errors.

    Attributes:
        path: The file involved (may be None)
    """

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class ImageOpenError(ImageError):
    """Image or dump file cannot be opened."""
    pass


class ImageMemoryError(ImageError):
    """Not enough memory to hold the image."""
    pass


class ImageReadError(ImageError):
    """Fewer bytes were read than the file size reported."""
    pass
