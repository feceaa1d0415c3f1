"""
stm32boot Command-Line Interface
================================

- **stm32boot**: Identify, program, verify and reset an STM32 target
  through its SPI bootloader

The tool is a Click application with comprehensive help and error
reporting; exit codes are defined in stm32boot.cli.errors.
"""

__all__ = ["stm32boot"]
