# retro_gb_core/peripherals/serial.py
"""
シリアル転送 (0xFF01 SB, 0xFF02 SC)。

内部クロックで開始された転送は4096サイクル後に完了し、送信バイトを output に記録します。
接続相手はいないため、受信バイトは常に0xFFになります。
"""
import logging
import struct
from typing import Optional

from retro_gb_core.arch.lr35902.interrupts import InterruptSource
from retro_gb_core.peripherals.base import Peripheral, InterruptRequester

logger = logging.getLogger(__name__)

SB, SC = range(2)
TRANSFER_CYCLES = 4096
TRANSFER_START = 0x80
INTERNAL_CLOCK = 0x01

_STATE = struct.Struct(">BBi")


# @intent:responsibility シリアルポートのレジスタと転送タイミングを管理します。
class Serial(Peripheral):
    def __init__(self, request_interrupt: Optional[InterruptRequester] = None):
        super().__init__(request_interrupt)
        self.output = bytearray()
        self.reset()

    def reset(self) -> None:
        self.sb = 0x00
        self.sc = 0x00
        self._remaining = 0
        self.output.clear()

    @property
    def transferring(self) -> bool:
        return self._remaining > 0

    def read(self, address: int) -> int:
        if address == SB:
            return self.sb
        return 0x7E | self.sc

    def write(self, address: int, data: int) -> None:
        if address == SB:
            self.sb = data & 0xFF
            return
        self.sc = data & 0x81
        if self.sc & TRANSFER_START and self.sc & INTERNAL_CLOCK:
            self._remaining = TRANSFER_CYCLES
        else:
            self._remaining = 0

    def tick(self, cycles: int) -> None:
        if not self.transferring:
            return
        self._remaining -= cycles
        if self._remaining > 0:
            return
        self._remaining = 0
        self.output.append(self.sb)
        logger.debug("Serial transfer complete: %#04x", self.sb)
        self.sb = 0xFF
        self.sc &= ~TRANSFER_START & 0xFF
        self._raise_interrupt(InterruptSource.SERIAL)

    def dump_state(self) -> bytes:
        return _STATE.pack(self.sb, self.sc, self._remaining)

    def load_state(self, data: bytes) -> None:
        self.sb, self.sc, self._remaining = _STATE.unpack(data)
