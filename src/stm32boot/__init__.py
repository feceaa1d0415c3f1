"""
stm32boot - STM32 Flash Programming over the SPI Bootloader
===========================================================

This package programs firmware into the internal flash of an STM32
microcontroller from a Raspberry Pi, using the ROM bootloader's SPI
protocol (ST AN4286). The Pi drives the target's NRST and BOOT0 lines,
so no jumpers or buttons are needed.

Main Components
---------------
- **comms**: Bootloader protocol
    SPI transport, framing, ACK handling and the bootloader command set

- **flash**: Flash programming
    Memory map, timing model, chunked programming and verification

- **image**: Firmware image files
    Loading raw binaries and writing read-back dumps

- **cli**: Command-line tool (stm32boot)

Quick Start
-----------
Program and verify an image:
    >>> from stm32boot import BootConfig, BootloaderClient, FlashProgrammer
    >>> from stm32boot import load_image, open_transport
    >>> image = load_image("firmware.bin")
    >>> with open_transport(BootConfig()) as transport:
    ...     client = BootloaderClient(transport)
    ...     client.enter_bootloader()
    ...     programmer = FlashProgrammer(client)
    ...     if programmer.program(image, 0x08000000):
    ...         print(programmer.verify(image, 0x08000000).ok)
    ...     client.reset()

Or use the command-line tool:
    $ stm32boot -i
    $ stm32boot -p firmware.bin 0x08000000 -v

Reference Documentation
-----------------------
- ST AN4286: SPI protocol used in the STM32 bootloader
- ST AN2606: STM32 microcontroller system memory boot mode
- RM0368: STM32F401 reference manual (flash sectors and timing)

Version History
---------------
1.0.0 - Initial release with SPI bootloader client and stm32boot CLI
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from stm32boot.errors import (
    Stm32BootError,
    CommsError,
    ConnectionError,
    ProtocolError,
    TimeoutError,
    FlashError,
    AddressRangeError,
    UnsupportedEraseError,
    ImageError,
    ImageOpenError,
    ImageMemoryError,
    ImageReadError,
)
from stm32boot.config import BootConfig
from stm32boot.comms import (
    BootloaderClient,
    BootMode,
    DeviceSession,
    FrameProtocol,
    SpiTransport,
    Transport,
    open_transport,
)
from stm32boot.flash import FlashProgrammer, VerificationResult, compare
from stm32boot.image import load_image, save_dump

__all__ = [
    # Version
    "__version__",
    # Errors
    "Stm32BootError",
    "CommsError",
    "ConnectionError",
    "ProtocolError",
    "TimeoutError",
    "FlashError",
    "AddressRangeError",
    "UnsupportedEraseError",
    "ImageError",
    "ImageOpenError",
    "ImageMemoryError",
    "ImageReadError",
    # Configuration
    "BootConfig",
    # Protocol
    "BootloaderClient",
    "BootMode",
    "DeviceSession",
    "FrameProtocol",
    "SpiTransport",
    "Transport",
    "open_transport",
    # Flash
    "FlashProgrammer",
    "VerificationResult",
    "compare",
    # Files
    "load_image",
    "save_dump",
]
