"""
XOR Checksum for the STM32 SPI Bootloader Protocol
===================================================

Every data frame sent to the bootloader (addresses, erase codes and
write payloads) is terminated by a single checksum byte: the XOR of all
bytes in the frame. The bootloader recomputes it and answers NACK on a
mismatch.

Technical Details
-----------------
- Seed: 0x00
- Fold: checksum ^= byte, for every byte in order
- A frame followed by its own checksum folds to zero, which is how the
  device side validates a received frame

Usage
-----
    from stm32boot.comms.checksum import xor_checksum, append_checksum

    frame = append_checksum(bytes([0x08, 0x00, 0x00, 0x00]))
    # frame == b'\\x08\\x00\\x00\\x00\\x08'
"""

from functools import reduce
from operator import xor
from typing import Final

# =============================================================================
# Checksum Constants
# =============================================================================

# Seed value for the XOR fold
CHECKSUM_INITIAL: Final[int] = 0x00


# =============================================================================
# Checksum Functions
# =============================================================================

def xor_checksum(data: bytes, initial: int = CHECKSUM_INITIAL) -> int:
    """
    Calculate the XOR checksum of a frame payload.

    Args:
        data: Payload bytes (without the checksum byte).
        initial: Seed value. Default is 0x00 as used by the bootloader.
                 Can be used to continue a checksum over split buffers.

    Returns:
        8-bit checksum (0x00 to 0xFF).

    Example:
        >>> hex(xor_checksum(bytes([0x08, 0x00, 0x00, 0x00])))
        '0x8'
        >>> xor_checksum(b"")
        0
    """
    return reduce(xor, data, initial) & 0xFF


def append_checksum(data: bytes) -> bytes:
    """
    Return the payload followed by its checksum byte.

    Args:
        data: Payload bytes.

    Returns:
        Payload plus one trailing checksum byte, ready for transmission.
    """
    return bytes(data) + bytes([xor_checksum(data)])


def verify_checksum(data: bytes, expected: int) -> bool:
    """
    Verify that a payload matches an expected checksum.

    Args:
        data: Payload bytes (without checksum).
        expected: Checksum byte received with the payload.

    Returns:
        True if the calculated checksum matches, False otherwise.
    """
    return xor_checksum(data) == expected


def verify_frame(frame: bytes) -> bool:
    """
    Verify a frame that has its checksum appended.

    The XOR of all bytes of a well-formed frame, checksum included, is zero.

    Args:
        frame: Payload followed by the checksum byte.

    Returns:
        True if the frame is well formed, False otherwise (including
        frames too short to carry a payload).
    """
    if len(frame) < 2:  # Need at least 1 payload byte + 1 checksum byte
        return False
    return xor_checksum(frame) == 0
