"""
Flash memory layout, programming and verification.

- **memory_map**: Address space, sectors, timing model, page chunking
- **programmer**: Erase, chunked write, read back
- **verify**: Byte-wise comparison of image and read-back
"""

from stm32boot.flash.memory_map import (
    FLASH_END,
    FLASH_START,
    PAGE_SIZE,
    SECTORS,
    Sector,
    check_flash_range,
    flash_range_valid,
    page_chunks,
    sectors_in_range,
    write_delay_ms,
)
from stm32boot.flash.verify import compare
from stm32boot.flash.programmer import FlashProgrammer, VerificationResult

__all__ = [
    "FLASH_END",
    "FLASH_START",
    "PAGE_SIZE",
    "SECTORS",
    "Sector",
    "check_flash_range",
    "flash_range_valid",
    "page_chunks",
    "sectors_in_range",
    "write_delay_ms",
    "compare",
    "FlashProgrammer",
    "VerificationResult",
]
