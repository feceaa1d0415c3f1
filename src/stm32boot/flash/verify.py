"""
Read-back verification.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)


def compare(expected: bytes, actual: bytes, size: Optional[int] = None) -> int:
    """
    Compare two buffers byte by byte.

    Args:
        expected: Reference data (the image).
        actual: Data read back from the device.
        size: Number of bytes to compare. Defaults to len(expected).

    Returns:
        Index of the first differing byte, or size if the buffers match.

    Raises:
        ValueError: If either buffer is shorter than size.

    Example:
        >>> compare(b"\\x01\\x02\\x03", b"\\x01\\xff\\x03")
        1
    """
    if size is None:
        size = len(expected)
    if size < 0:
        raise ValueError(f"Size must not be negative, got {size}")
    if len(expected) < size or len(actual) < size:
        raise ValueError(
            f"Cannot compare {size} bytes: buffers hold "
            f"{len(expected)} and {len(actual)} bytes"
        )

    for index in range(size):
        if expected[index] != actual[index]:
            logger.error(
                "Verification failed at byte %d: expected 0x%02X, read 0x%02X",
                index, expected[index], actual[index],
            )
            return index

    logger.info("Verification succeeded (%d bytes)", size)
    return size
