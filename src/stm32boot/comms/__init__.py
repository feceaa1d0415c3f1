"""
STM32 Bootloader Communication Module
=====================================

This module talks to the STM32 system memory bootloader over SPI. It
implements the AN4286 framing and the command set used to identify the
device and to read, write, erase and start its flash.

Module Structure
----------------
- **checksum**: XOR checksum of data frames
- **transport**: SPI bus and RESET/BOOT0 lines (spidev + gpiozero)
- **frame**: Synchronization, ACK handling, command/data/address frames
- **session**: What the host knows about the device
- **commands**: GET, GET_VERSION, GET_ID, READ_MEMORY, WRITE_MEMORY,
  ERASE, GO

Quick Start
-----------
    from stm32boot.config import BootConfig
    from stm32boot.comms import BootloaderClient, open_transport

    with open_transport(BootConfig()) as transport:
        client = BootloaderClient(transport)
        client.enter_bootloader()
        client.query_info()
        print(client.session.version_string, hex(client.session.product_id))
        client.reset()

Error Handling
--------------
All communication errors inherit from `CommsError`:

- `ConnectionError`: Bus unavailable or bootloader not synchronized
- `ProtocolError`: Command issued outside bootloader mode
- `TimeoutError`: Bounded ACK wait exhausted

A NACK is reported through return values, not exceptions.

Thread Safety
-------------
The communication classes are NOT thread-safe. Use only from a single
thread, or protect all calls with external synchronization.

References
----------
- ST AN4286: SPI protocol used in the STM32 bootloader
- ST AN2606: STM32 microcontroller system memory boot mode
"""

# =============================================================================
# Public API Exports
# =============================================================================

# Checksum utilities
from stm32boot.comms.checksum import (
    CHECKSUM_INITIAL,
    append_checksum,
    verify_checksum,
    verify_frame,
    xor_checksum,
)

# Transport
from stm32boot.comms.transport import (
    DEFAULT_SPEED_HZ,
    MAX_SPEED_HZ,
    SpiDeviceInfo,
    SpiTransport,
    Transport,
    close_transport,
    format_device_list,
    list_spi_devices,
    open_transport,
)

# Frame protocol
from stm32boot.comms.frame import (
    ACK,
    FILLER,
    MAX_TRANSFER_SIZE,
    NACK,
    SOF,
    SYNC_ECHO,
    FrameProtocol,
    encode_address,
    encode_length,
)

# Session
from stm32boot.comms.session import BootMode, DeviceSession

# Commands
from stm32boot.comms.commands import (
    ERASE_BANK1,
    ERASE_BANK2,
    ERASE_GLOBAL,
    BootloaderClient,
    Command,
)

# Re-export errors for convenience
from stm32boot.errors import (
    CommsError,
    ConnectionError,
    ProtocolError,
    TimeoutError,
)

__all__ = [
    # Checksum
    "CHECKSUM_INITIAL",
    "append_checksum",
    "verify_checksum",
    "verify_frame",
    "xor_checksum",
    # Transport
    "DEFAULT_SPEED_HZ",
    "MAX_SPEED_HZ",
    "SpiDeviceInfo",
    "SpiTransport",
    "Transport",
    "close_transport",
    "format_device_list",
    "list_spi_devices",
    "open_transport",
    # Frame protocol
    "ACK",
    "FILLER",
    "MAX_TRANSFER_SIZE",
    "NACK",
    "SOF",
    "SYNC_ECHO",
    "FrameProtocol",
    "encode_address",
    "encode_length",
    # Session
    "BootMode",
    "DeviceSession",
    # Commands
    "ERASE_BANK1",
    "ERASE_BANK2",
    "ERASE_GLOBAL",
    "BootloaderClient",
    "Command",
    # Errors
    "CommsError",
    "ConnectionError",
    "ProtocolError",
    "TimeoutError",
]
