"""
STM32F401 Flash Memory Map and Timing
=====================================

Address space, sector layout and the open-loop timing model used while
programming. The bootloader gives no progress feedback during erase and
programming, so the host waits out the datasheet worst case before it
polls for the acknowledge.

Memory Layout
-------------
    Sector  Start        End          Size      Erase time
    ------  -----------  -----------  --------  ----------
    0       0x08000000   0x08003FFF   16 KiB      400 ms
    1       0x08004000   0x08007FFF   16 KiB      400 ms
    2       0x08008000   0x0800BFFF   16 KiB      400 ms
    3       0x0800C000   0x0800FFFF   16 KiB      400 ms
    4       0x08010000   0x0801FFFF   64 KiB     1200 ms
    5       0x08020000   0x0803FFFF  128 KiB     2000 ms

Mass erase takes up to 8 s. Programming takes 16 us per byte.
"""

import math
from dataclasses import dataclass
from typing import Final, Iterator

from stm32boot.errors import AddressRangeError

# =============================================================================
# Address Space
# =============================================================================

FLASH_START: Final[int] = 0x08000000
FLASH_END: Final[int] = 0x0807FFFF  # inclusive

# Largest block one READ_MEMORY/WRITE_MEMORY moves
PAGE_SIZE: Final[int] = 256


# =============================================================================
# Timing (milliseconds)
# =============================================================================

# Programming time per byte
WORD_PROGRAMMING_TIME_MS: Final[float] = 0.016

# Worst-case sector erase times by sector size
SECTOR_ERASE_16K_MS: Final[int] = 400
SECTOR_ERASE_64K_MS: Final[int] = 1200
SECTOR_ERASE_128K_MS: Final[int] = 2000

# Worst-case global erase time
MASS_ERASE_TIME_MS: Final[int] = 8000

# Pause between the address ACK and the WRITE_MEMORY data frame
WRITE_SETTLE_MS: Final[int] = 1

# Time NRST is held low
RESET_PULSE_MS: Final[int] = 200


# =============================================================================
# Sectors
# =============================================================================

@dataclass(frozen=True)
class Sector:
    """
    One erase unit of the flash.

    Attributes:
        index: Sector number
        start: First address
        size: Size in bytes
        erase_time_ms: Worst-case erase time
    """

    index: int
    start: int
    size: int
    erase_time_ms: int

    @property
    def end(self) -> int:
        """Last address (inclusive)."""
        return self.start + self.size - 1

    def overlaps(self, start: int, end: int) -> bool:
        """Return True if [start, end] shares an address with this sector."""
        return start <= self.end and end >= self.start


def _build_sectors() -> tuple[Sector, ...]:
    layout = (
        (16 * 1024, SECTOR_ERASE_16K_MS),
        (16 * 1024, SECTOR_ERASE_16K_MS),
        (16 * 1024, SECTOR_ERASE_16K_MS),
        (16 * 1024, SECTOR_ERASE_16K_MS),
        (64 * 1024, SECTOR_ERASE_64K_MS),
        (128 * 1024, SECTOR_ERASE_128K_MS),
    )
    sectors = []
    address = FLASH_START
    for index, (size, erase_time) in enumerate(layout):
        sectors.append(Sector(index, address, size, erase_time))
        address += size
    return tuple(sectors)


SECTORS: Final[tuple[Sector, ...]] = _build_sectors()


# =============================================================================
# Range Checks
# =============================================================================

def is_in_range(value: int, minimum: int, maximum: int) -> bool:
    """Return True if minimum <= value <= maximum."""
    return minimum <= value <= maximum


def flash_range_valid(address: int, size: int) -> bool:
    """
    Return True if [address, address + size - 1] lies inside flash.

    An empty range is never valid.
    """
    if size < 1:
        return False
    return (
        is_in_range(address, FLASH_START, FLASH_END)
        and is_in_range(address + size - 1, FLASH_START, FLASH_END)
    )


def check_flash_range(address: int, size: int) -> None:
    """
    Raise if [address, address + size - 1] does not lie inside flash.

    Raises:
        AddressRangeError: If either end falls outside flash, or size < 1.
    """
    if not flash_range_valid(address, size):
        raise AddressRangeError(address, address + max(size, 1) - 1)


def sectors_in_range(address: int, size: int) -> list[Sector]:
    """
    Return the sectors overlapped by [address, address + size - 1].

    Args:
        address: Start address.
        size: Range length in bytes.

    Returns:
        Overlapped sectors in ascending order. Empty for size < 1.
    """
    if size < 1:
        return []
    end = address + size - 1
    return [sector for sector in SECTORS if sector.overlaps(address, end)]


def sector_erase_time_ms(sectors: list[Sector]) -> int:
    """Worst-case time to erase the given sectors one by one."""
    return sum(sector.erase_time_ms for sector in sectors)


# =============================================================================
# Timing Model
# =============================================================================

def write_delay_ms(size: int) -> int:
    """
    Time to wait after sending a WRITE_MEMORY block of size bytes.

    Example:
        >>> write_delay_ms(256)
        5
        >>> write_delay_ms(10)
        1
    """
    return math.ceil(size * WORD_PROGRAMMING_TIME_MS)


# =============================================================================
# Chunking
# =============================================================================

def page_chunks(address: int, data: bytes, page_size: int = PAGE_SIZE) -> Iterator[tuple[int, bytes]]:
    """
    Split a buffer into transfer-sized chunks.

    Yields ceil(len(data) / page_size) chunks in ascending address order.
    Every chunk is full except possibly the last; no empty chunk is ever
    produced.

    Args:
        address: Address of the first byte.
        data: Buffer to split.
        page_size: Maximum chunk size.

    Yields:
        (chunk_address, chunk_bytes) tuples.
    """
    view = memoryview(bytes(data))
    for offset in range(0, len(view), page_size):
        yield address + offset, bytes(view[offset:offset + page_size])


def chunk_count(size: int, page_size: int = PAGE_SIZE) -> int:
    """Number of chunks page_chunks() yields for size bytes."""
    return math.ceil(size / page_size)
