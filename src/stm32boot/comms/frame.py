"""
STM32 SPI Bootloader Frame Protocol
===================================

This module implements the byte-level framing of the STM32 system memory
bootloader over SPI (ST application note AN4286). It handles:

- Synchronization with a freshly reset bootloader
- ACK/NACK consumption, including the host acknowledge echo
- Command frames (SOF, opcode, complement)
- Checksummed data frames
- Big-endian address frames

Protocol Overview
-----------------
SPI is host clocked, so the device can only answer while the host sends
filler bytes. Every exchange below is one byte out, one byte in:

    Command frame      Data frame               ACK phase
    ┌────┬────┬────┐   ┌──────────┬──────────┐   ┌────┬─────────┬────┐
    │ 5A │ op │ ~op│   │ payload  │ XOR(pl)  │   │ 00 │ 00 .. 00│ 79 │
    └────┴────┴────┘   └──────────┴──────────┘   └────┴─────────┴────┘
                                                  dummy  polls   echo

- The device answers each poll with filler until it has a verdict,
  then with ACK (0x79) or NACK (0x1F)
- The host echoes 0x79 after an ACK so the device can proceed
- Addresses travel MSB first, followed by their XOR checksum

Synchronization
---------------
1. Host sends SOF (0x5A) repeatedly
2. Device answers 0xA5 once it has seen SOF
3. Host consumes one ACK phase; on ACK the bootloader is ready

References
----------
- ST AN4286: SPI protocol used in the STM32 bootloader
- ST AN2606: STM32 microcontroller system memory boot mode
"""

import logging
import struct
from typing import Final, Optional

from stm32boot.comms.checksum import xor_checksum
from stm32boot.comms.transport import Transport
from stm32boot.errors import ConnectionError, TimeoutError

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Protocol Constants
# =============================================================================

# Positive acknowledge, also echoed back by the host
ACK: Final[int] = 0x79

# Negative acknowledge
NACK: Final[int] = 0x1F

# Start of frame, precedes every command
SOF: Final[int] = 0x5A

# Device answer to SOF during synchronization
SYNC_ECHO: Final[int] = 0xA5

# Byte clocked out when the host only wants to read
FILLER: Final[int] = 0x00

# Largest block a single READ_MEMORY/WRITE_MEMORY can move
MAX_TRANSFER_SIZE: Final[int] = 256


# =============================================================================
# Field Encoding
# =============================================================================

def encode_address(address: int) -> bytes:
    """
    Encode a memory address as it travels on the wire.

    Args:
        address: 32-bit address.

    Returns:
        Four bytes, most significant first.

    Raises:
        ValueError: If the address does not fit in 32 bits.

    Example:
        >>> encode_address(0x08000000).hex()
        '08000000'
    """
    if not 0 <= address <= 0xFFFFFFFF:
        raise ValueError(f"Address out of 32-bit range: 0x{address:X}")
    return struct.pack(">I", address)


def encode_length(size: int) -> tuple[int, int]:
    """
    Encode a transfer size as the (N, ~N) pair used by READ/WRITE.

    The bootloader counts bytes minus one, so a 256-byte block is sent
    as 0xFF followed by its complement 0x00.

    Args:
        size: Number of bytes, 1 to 256.

    Returns:
        Tuple of (size - 1, complement of size - 1).

    Raises:
        ValueError: If size is outside 1..256.
    """
    if not 1 <= size <= MAX_TRANSFER_SIZE:
        raise ValueError(
            f"Transfer size must be 1-{MAX_TRANSFER_SIZE}, got {size}"
        )
    n = size - 1
    return n, ~n & 0xFF


# =============================================================================
# Frame Protocol
# =============================================================================

class FrameProtocol:
    """
    Framing and handshaking on top of a byte transport.

    The protocol has no timeouts of its own: a silent device makes the
    ACK wait loop forever, exactly like the ROM expects a patient host.
    Pass ack_poll_limit to bound the wait instead.

    Usage:
        frames = FrameProtocol(transport)
        frames.synchronize()

        if frames.send_command_frame(0x00):
            ...
    """

    def __init__(self, transport: Transport, ack_poll_limit: Optional[int] = None):
        """
        Initialize the frame protocol.

        Args:
            transport: Opened transport to the target.
            ack_poll_limit: Maximum filler polls while waiting for
                            ACK/NACK. None waits forever.
        """
        if ack_poll_limit is not None and ack_poll_limit < 1:
            raise ValueError(f"ack_poll_limit must be positive, got {ack_poll_limit}")
        self.transport = transport
        self.ack_poll_limit = ack_poll_limit

    # -------------------------------------------------------------------------
    # Handshaking
    # -------------------------------------------------------------------------

    def synchronize(self, max_attempts: Optional[int] = None) -> None:
        """
        Synchronize with a bootloader that was just reset.

        Sends SOF until the device answers with the sync echo, then
        consumes one ACK phase.

        Args:
            max_attempts: Give up after this many SOF bytes. None keeps
                          trying forever.

        Raises:
            ConnectionError: If no sync echo arrives within max_attempts,
                             or the device answers the handshake with NACK.
        """
        attempts = 0
        while self.transport.exchange(SOF) != SYNC_ECHO:
            attempts += 1
            if max_attempts is not None and attempts >= max_attempts:
                raise ConnectionError(
                    f"SPI bootloader is not connected "
                    f"(no sync echo after {attempts} attempts)"
                )

        logger.debug("Synchronization byte received after %d attempts", attempts + 1)

        if not self.await_ack():
            raise ConnectionError("SPI bootloader is not connected")

        logger.info("SPI bootloader is connected")

    def await_ack(self) -> bool:
        """
        Wait for the device to answer ACK or NACK.

        Clocks out one dummy filler byte, then polls with filler bytes,
        discarding everything that is neither ACK nor NACK. An ACK is
        echoed back to the device.

        Returns:
            True on ACK, False on NACK.

        Raises:
            TimeoutError: If ack_poll_limit is set and exhausted.
        """
        self.transport.exchange(FILLER)

        polls = 0
        while True:
            response = self.transport.exchange(FILLER)
            polls += 1

            if response == ACK:
                self.transport.exchange(ACK)
                return True
            if response == NACK:
                logger.debug("NACK received after %d polls", polls)
                return False

            if self.ack_poll_limit is not None and polls >= self.ack_poll_limit:
                raise TimeoutError(polls)

    # -------------------------------------------------------------------------
    # Frames
    # -------------------------------------------------------------------------

    def send_command_frame(self, opcode: int) -> bool:
        """
        Send a command frame and wait for its acknowledge.

        Args:
            opcode: Command opcode (0x00-0xFF).

        Returns:
            True if the device accepted the command.
        """
        opcode &= 0xFF
        for byte in (SOF, opcode, ~opcode & 0xFF):
            self.transport.exchange(byte)

        if not self.await_ack():
            logger.error("Command 0x%02X is not acknowledged", opcode)
            return False
        return True

    def send_data_frame(self, payload: bytes) -> None:
        """
        Send a payload followed by its XOR checksum.

        Does not wait for an acknowledge; the caller decides when the
        device is ready to answer.

        Args:
            payload: Frame payload.
        """
        self.transport.exchange_buffer(bytes(payload))
        self.transport.exchange(xor_checksum(payload))

    def send_address(self, address: int) -> bool:
        """
        Send a 4-byte address frame and wait for its acknowledge.

        Args:
            address: 32-bit memory address.

        Returns:
            True if the device accepted the address.
        """
        self.send_data_frame(encode_address(address))

        if not self.await_ack():
            logger.error("Address 0x%08X is not valid", address)
            return False
        return True

    def send_length(self, size: int) -> None:
        """
        Send the (N, ~N) length pair of a READ_MEMORY request.

        Args:
            size: Number of bytes, 1 to 256.
        """
        for byte in encode_length(size):
            self.transport.exchange(byte)

    def read_bytes(self, count: int) -> bytes:
        """
        Clock in count bytes by sending filler.

        Args:
            count: Number of bytes to read.

        Returns:
            The bytes clocked in.
        """
        return self.transport.exchange_buffer(bytes(count))
