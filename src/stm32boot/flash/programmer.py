"""
Flash Programming
=================

This module programs a firmware image into the target flash and reads it
back for verification. It sits on top of BootloaderClient and adds:

- Range validation of the whole image before anything is sent
- Global erase ahead of programming
- Page chunking (256 bytes per WRITE_MEMORY/READ_MEMORY)
- Progress reporting

Programming Flow
----------------
1. Check [address, address + size - 1] lies inside flash
2. Global erase, waiting out the mass erase time
3. Write the image in ascending 256-byte chunks
4. Optionally read it back and compare

A failing chunk aborts the run; nothing is rolled back, so a partially
programmed flash is left behind and must be erased again.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from stm32boot.flash.memory_map import (
    PAGE_SIZE,
    chunk_count,
    flash_range_valid,
    page_chunks,
    sector_erase_time_ms,
    sectors_in_range,
)
from stm32boot.flash.verify import compare

if TYPE_CHECKING:
    from stm32boot.comms.commands import BootloaderClient

logger = logging.getLogger(__name__)

# Type alias for progress callback
ProgressCallback = Callable[[int, int], None]


@dataclass
class VerificationResult:
    """
    Outcome of a read-back verification.

    Attributes:
        data: Bytes read back, or None if reading failed
        mismatch: Index of the first differing byte (len(image) on a match,
                  None if reading failed)
        size: Number of bytes verified
    """

    data: Optional[bytes]
    mismatch: Optional[int]
    size: int

    @property
    def ok(self) -> bool:
        """Return True if the read-back matched the image."""
        return self.data is not None and self.mismatch == self.size


class FlashProgrammer:
    """
    Programs and verifies flash images through a BootloaderClient.

    Example:
        programmer = FlashProgrammer(client, progress=print)
        if programmer.program(firmware, 0x08000000):
            result = programmer.verify(firmware, 0x08000000)
            print("OK" if result.ok else f"mismatch at {result.mismatch}")
    """

    def __init__(
        self,
        client: "BootloaderClient",
        progress: Optional[ProgressCallback] = None,
    ):
        """
        Initialize the programmer.

        Args:
            client: Client already synchronized with the bootloader.
            progress: Optional callback (bytes_done, total) called after
                      each chunk is written or read.
        """
        self.client = client
        self.progress = progress

    def _report(self, done: int, total: int) -> None:
        if self.progress:
            self.progress(done, total)

    def program(self, image: bytes, address: int) -> bool:
        """
        Erase the flash and write an image.

        Args:
            image: Firmware bytes.
            address: Flash address of the first byte.

        Returns:
            True if the whole image was written. False if the image is
            empty, out of range, or the device refused a step.

        Raises:
            CommsError: If the device stops answering mid-run.
        """
        size = len(image)
        if size == 0:
            logger.error("Image is empty, nothing to program")
            return False

        end = address + size - 1
        if not flash_range_valid(address, size):
            logger.error(
                "Image range 0x%08X-0x%08X is outside flash memory",
                address, end,
            )
            return False

        sectors = sectors_in_range(address, size)
        logger.debug(
            "Image covers sectors %s (%d ms sector erase), using global erase",
            ", ".join(str(s.index) for s in sectors),
            sector_erase_time_ms(sectors),
        )

        if not self.client.global_erase():
            return False

        logger.info(
            "Writing %d bytes in %d chunks...", size, chunk_count(size)
        )
        written = 0
        for chunk_address, chunk in page_chunks(address, image):
            if not self.client.write_memory(chunk_address, chunk):
                logger.error(
                    "Programming aborted at 0x%08X after %d bytes",
                    chunk_address, written,
                )
                return False
            written += len(chunk)
            self._report(written, size)

        logger.info(
            "Program of %d bytes (0x%08X-0x%08X) was written to flash memory",
            written, address, end,
        )
        return True

    def read_back(self, address: int, size: int) -> Optional[bytes]:
        """
        Read a memory range in page chunks.

        Args:
            address: First address.
            size: Number of bytes.

        Returns:
            The bytes read, or None if the range is outside flash or a
            chunk fails.
        """
        if not flash_range_valid(address, size):
            logger.error(
                "Read range 0x%08X-0x%08X is outside flash memory",
                address, address + size - 1,
            )
            return None

        data = bytearray()
        remaining = size
        chunk_address = address

        while remaining > 0:
            length = min(remaining, PAGE_SIZE)
            chunk = self.client.read_memory(chunk_address, length)
            if chunk is None:
                logger.error("Read back failed at 0x%08X", chunk_address)
                return None
            data += chunk
            chunk_address += length
            remaining -= length
            self._report(len(data), size)

        return bytes(data)

    def verify(self, image: bytes, address: int) -> VerificationResult:
        """
        Read the image range back and compare it with the image.

        Args:
            image: Expected bytes.
            address: Flash address of the first byte.

        Returns:
            VerificationResult with the read data and first mismatch.
        """
        size = len(image)
        logger.info("Reading back %d bytes from 0x%08X...", size, address)

        data = self.read_back(address, size)
        if data is None:
            return VerificationResult(data=None, mismatch=None, size=size)

        return VerificationResult(data=data, mismatch=compare(image, data, size), size=size)
