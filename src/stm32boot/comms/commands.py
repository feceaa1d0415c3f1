"""
STM32 Bootloader Command Set
============================

This module implements the bootloader commands used to identify the
device and to read, write, erase and start its flash memory. Each command
is built from the frames in stm32boot.comms.frame.

Command Summary
---------------
    Opcode  Command        Host sends after ACK            Device returns
    ------  -------------  ------------------------------  -------------------
    0x00    GET            -                               N, version, opcodes
    0x01    GET_VERSION    -                               version
    0x02    GET_ID         -                               N, product id
    0x11    READ_MEMORY    address, (N, ~N)                N+1 bytes
    0x21    GO             address                         -
    0x31    WRITE_MEMORY   address, N + data + checksum    -
    0x44    ERASE          0xFFFF + checksum               -

Every reply that carries data starts with one dummy byte, clocked in
with a filler byte before the payload.

Failure Reporting
-----------------
A NACK is a normal answer, not an exception: commands return False (or
None for READ_MEMORY) and log why. Preconditions that the host can check
itself (transfer size, write address) are checked before anything is
sent.

Erase
-----
Only the global erase code is used. Page and bank erase do not work
reliably through the SPI bootloader, so any other code raises
UnsupportedEraseError before the ERASE command is sent.
"""

import logging
from enum import IntEnum
from typing import Final, Optional

from stm32boot.comms.frame import FrameProtocol, MAX_TRANSFER_SIZE
from stm32boot.comms.session import BootMode, DeviceSession
from stm32boot.comms.transport import Transport
from stm32boot.errors import ProtocolError, UnsupportedEraseError
from stm32boot.flash.memory_map import (
    FLASH_END,
    FLASH_START,
    MASS_ERASE_TIME_MS,
    RESET_PULSE_MS,
    WRITE_SETTLE_MS,
    is_in_range,
    write_delay_ms,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Command Opcodes
# =============================================================================

class Command(IntEnum):
    """Bootloader command opcodes."""

    GET = 0x00
    GET_VERSION = 0x01
    GET_ID = 0x02
    READ_MEMORY = 0x11
    GO = 0x21
    WRITE_MEMORY = 0x31
    ERASE = 0x44


# Special erase codes (sent in place of the page count)
ERASE_GLOBAL: Final[int] = 0xFFFF
ERASE_BANK1: Final[int] = 0xFFFE
ERASE_BANK2: Final[int] = 0xFFFD


# =============================================================================
# Bootloader Client
# =============================================================================

class BootloaderClient:
    """
    Issues bootloader commands and tracks the device session.

    The client owns a FrameProtocol and a DeviceSession. All commands
    except reset() and enter_bootloader() require the session to be in
    bootloader mode.

    Example:
        client = BootloaderClient(transport)
        client.enter_bootloader()

        if client.query_info():
            print(client.session.version_string)

        client.global_erase()
        client.write_memory(0x08000000, firmware[:256])
        client.reset()
    """

    def __init__(
        self,
        transport: Transport,
        session: Optional[DeviceSession] = None,
        ack_poll_limit: Optional[int] = None,
    ):
        """
        Initialize the client.

        Args:
            transport: Opened transport to the target.
            session: Session to update. A fresh one is created if omitted.
            ack_poll_limit: Bound on ACK polling (None waits forever).
        """
        self.transport = transport
        self.frames = FrameProtocol(transport, ack_poll_limit=ack_poll_limit)
        self.session = session if session is not None else DeviceSession()

    def _require_bootloader(self, command: str) -> None:
        if not self.session.in_bootloader:
            raise ProtocolError(
                f"{command} requires bootloader mode "
                f"(device is {self.session.mode.value})"
            )

    def _reply_acknowledged(self, command: str) -> bool:
        if not self.frames.await_ack():
            logger.error("%s reply was not acknowledged", command)
            return False
        return True

    # -------------------------------------------------------------------------
    # Reset Control
    # -------------------------------------------------------------------------

    def reset(self, bootloader: bool = False, max_attempts: Optional[int] = None) -> None:
        """
        Pulse the target reset with BOOT0 selecting the boot source.

        Args:
            bootloader: Boot into the system memory bootloader and
                        synchronize with it. Otherwise boot user flash.
            max_attempts: Synchronization attempt limit (bootloader only).

        Raises:
            ConnectionError: If the bootloader does not synchronize.
        """
        self.transport.set_reset(True)
        self.transport.set_boot_mode(bootloader)
        self.transport.delay_ms(RESET_PULSE_MS)
        self.transport.set_reset(False)

        logger.info(
            "STM reset, with bootloader %s",
            "enabled" if bootloader else "disabled",
        )

        self.session.clear()
        self.session.mode = BootMode.NORMAL
        if bootloader:
            self.frames.synchronize(max_attempts=max_attempts)
            self.session.mode = BootMode.BOOTLOADER

    def enter_bootloader(self, max_attempts: Optional[int] = None) -> None:
        """
        Reset into the bootloader and synchronize.

        Raises:
            ConnectionError: If the bootloader does not synchronize.
        """
        self.reset(bootloader=True, max_attempts=max_attempts)

    # -------------------------------------------------------------------------
    # Identification
    # -------------------------------------------------------------------------

    def get(self) -> bool:
        """
        GET: read the bootloader version and supported commands.

        Returns:
            True on success. The session holds the version and opcodes.
        """
        self._require_bootloader("GET")
        if not self.frames.send_command_frame(Command.GET):
            return False

        self.frames.read_bytes(1)  # dummy
        count = self.frames.read_bytes(1)[0] + 1
        reply = self.frames.read_bytes(count)

        self.session.bootloader_version = reply[0]
        self.session.supported_commands = tuple(reply[1:])

        logger.info("Bootloader version: %s", self.session.version_string)
        for index, opcode in enumerate(self.session.supported_commands):
            logger.debug("cmd %d: 0x%02X", index, opcode)

        return self._reply_acknowledged("GET")

    def get_version(self) -> bool:
        """
        GET_VERSION: read the bootloader version byte.

        Returns:
            True on success. The session holds the version.
        """
        self._require_bootloader("GET_VERSION")
        if not self.frames.send_command_frame(Command.GET_VERSION):
            return False

        self.frames.read_bytes(1)  # dummy
        self.session.bootloader_version = self.frames.read_bytes(1)[0]
        logger.info("Bootloader version: %s", self.session.version_string)

        return self._reply_acknowledged("GET_VERSION")

    def get_id(self) -> bool:
        """
        GET_ID: read the product identifier.

        Returns:
            True on success. The session holds the product id.
        """
        self._require_bootloader("GET_ID")
        if not self.frames.send_command_frame(Command.GET_ID):
            return False

        self.frames.read_bytes(1)  # dummy
        count = self.frames.read_bytes(1)[0] + 1
        self.session.product_id = int.from_bytes(self.frames.read_bytes(count), "big")
        logger.info("Product ID: 0x%04X", self.session.product_id)

        return self._reply_acknowledged("GET_ID")

    def query_info(self) -> bool:
        """
        Run GET, GET_VERSION and GET_ID in sequence.

        Returns:
            True if all three succeeded. Stops at the first failure.
        """
        return self.get() and self.get_version() and self.get_id()

    # -------------------------------------------------------------------------
    # Memory Access
    # -------------------------------------------------------------------------

    def read_memory(self, address: int, size: int) -> Optional[bytes]:
        """
        READ_MEMORY: read up to 256 bytes.

        Args:
            address: Start address.
            size: Number of bytes, 1 to 256.

        Returns:
            The bytes read, or None if the size is invalid or the device
            refused the command, address or size.
        """
        self._require_bootloader("READ_MEMORY")
        if not 1 <= size <= MAX_TRANSFER_SIZE:
            logger.error(
                "Number %d of bytes to be read is out of range <1;%d>",
                size, MAX_TRANSFER_SIZE,
            )
            return None

        if not self.frames.send_command_frame(Command.READ_MEMORY):
            return None
        if not self.frames.send_address(address):
            return None

        self.frames.send_length(size)
        if not self.frames.await_ack():
            logger.error("Number %d of bytes to be read is not valid", size)
            return None

        self.frames.read_bytes(1)  # dummy
        return self.frames.read_bytes(size)

    def write_memory(self, address: int, data: bytes) -> bool:
        """
        WRITE_MEMORY: write up to 256 bytes to flash.

        Only the start address is checked against the flash range; the
        caller is responsible for the end of the block.

        Args:
            address: Start address inside flash.
            data: 1 to 256 bytes.

        Returns:
            True once the device acknowledged the programmed block.
        """
        self._require_bootloader("WRITE_MEMORY")
        size = len(data)

        if not is_in_range(address, FLASH_START, FLASH_END):
            logger.error(
                "Address 0x%08X is out of flash <0x%08X;0x%08X>",
                address, FLASH_START, FLASH_END,
            )
            return False
        if not 1 <= size <= MAX_TRANSFER_SIZE:
            logger.error(
                "Number %d of bytes to be written is out of range <1;%d>",
                size, MAX_TRANSFER_SIZE,
            )
            return False

        if not self.frames.send_command_frame(Command.WRITE_MEMORY):
            return False
        if not self.frames.send_address(address):
            return False

        # The device may need 1 ms after the address ACK before the data
        self.transport.delay_ms(WRITE_SETTLE_MS)

        self.frames.send_data_frame(bytes([size - 1]) + bytes(data))
        self.transport.delay_ms(write_delay_ms(size))

        if not self.frames.await_ack():
            logger.error(
                "Write Memory (addr: 0x%08X, size: %d) failed", address, size
            )
            return False
        return True

    # -------------------------------------------------------------------------
    # Erase
    # -------------------------------------------------------------------------

    def erase(self, count: int = ERASE_GLOBAL) -> bool:
        """
        ERASE with a special code.

        Args:
            count: Erase code. Only ERASE_GLOBAL is supported.

        Returns:
            True once the device acknowledged the erase.

        Raises:
            UnsupportedEraseError: For any code other than ERASE_GLOBAL.
        """
        self._require_bootloader("ERASE")
        if count != ERASE_GLOBAL:
            raise UnsupportedEraseError(count)

        if not self.frames.send_command_frame(Command.ERASE):
            return False

        logger.info("Erasing flash memory (global erase)...")
        # FF FF is followed by its checksum 0x00 on the wire
        self.frames.send_data_frame(count.to_bytes(2, "big"))
        self.transport.delay_ms(MASS_ERASE_TIME_MS)

        if not self.frames.await_ack():
            logger.error("Global erase failed")
            return False

        logger.info("Global erase done")
        return True

    def global_erase(self) -> bool:
        """Erase the whole flash memory."""
        return self.erase(ERASE_GLOBAL)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def go(self, address: int) -> bool:
        """
        GO: jump to user code.

        Args:
            address: Start address of the application (vector table).

        Returns:
            True if the device accepted the jump. The session is then
            RUNNING and no further commands can be sent.
        """
        self._require_bootloader("GO")
        if not self.frames.send_command_frame(Command.GO):
            return False
        if not self.frames.send_address(address):
            return False

        self.session.mode = BootMode.RUNNING
        logger.info("Command GO done (0x%08X)", address)
        return True
