"""
Device session state.

One DeviceSession is owned by one BootloaderClient and tracks what is
known about the target during a programming run: which mode it is in and
what GET, GET_VERSION and GET_ID reported.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class BootMode(Enum):
    """Run state of the target as far as the host knows."""

    # Running user code, or state unknown
    NORMAL = "normal"

    # System memory bootloader, synchronized
    BOOTLOADER = "bootloader"

    # Jumped to user code with GO
    RUNNING = "running"


@dataclass
class DeviceSession:
    """
    What the host knows about the target.

    Attributes:
        mode: Current run state
        bootloader_version: Version byte, major in the high nibble
        product_id: Product identifier from GET_ID (e.g., 0x0433)
        supported_commands: Opcodes listed by GET
    """

    mode: BootMode = BootMode.NORMAL
    bootloader_version: Optional[int] = None
    product_id: Optional[int] = None
    supported_commands: tuple[int, ...] = field(default_factory=tuple)

    @property
    def in_bootloader(self) -> bool:
        return self.mode is BootMode.BOOTLOADER

    @property
    def version_string(self) -> Optional[str]:
        """Bootloader version as "major.minor", or None if unknown."""
        if self.bootloader_version is None:
            return None
        major = (self.bootloader_version & 0xF0) >> 4
        minor = self.bootloader_version & 0x0F
        return f"{major}.{minor}"

    def clear(self) -> None:
        """Forget everything learned from the device."""
        self.bootloader_version = None
        self.product_id = None
        self.supported_commands = ()
