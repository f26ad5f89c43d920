# retro_gb_core/peripherals/timer.py
"""
タイマー/ディバイダ (0xFF04-0xFF07)。

    FF04 DIV  : 16ビット内部カウンタの上位8ビット。書き込むと0にクリアされる。
    FF05 TIMA : TACで選択した周期でインクリメント。オーバーフローでTMAを再ロードし、TIMER割り込みを要求する。
    FF06 TMA  : TIMAの再ロード値。
    FF07 TAC  : ビット2=有効、ビット1-0=周期選択。
"""
import logging
import struct
from typing import Optional

from retro_gb_core.arch.lr35902.interrupts import InterruptSource
from retro_gb_core.peripherals.base import Peripheral, InterruptRequester

logger = logging.getLogger(__name__)

DIV, TIMA, TMA, TAC = range(4)

# TACの周期選択 -> 内部カウンタ何サイクル毎にTIMAを進めるか
TIMER_PERIODS = (1024, 16, 64, 256)

POST_BOOT_DIVIDER = 0xABCC

_STATE = struct.Struct(">HBBB")


# @intent:responsibility 内部ディバイダとプログラマブルタイマーを管理します。
class Timer(Peripheral):
    def __init__(self, request_interrupt: Optional[InterruptRequester] = None):
        super().__init__(request_interrupt)
        self.reset()

    def reset(self) -> None:
        self.counter = POST_BOOT_DIVIDER
        self.tima = 0x00
        self.tma = 0x00
        self.tac = 0x00

    @property
    def enabled(self) -> bool:
        return (self.tac & 0x04) != 0

    @property
    def period(self) -> int:
        return TIMER_PERIODS[self.tac & 0x03]

    # @intent:responsibility STOP命令の実行時などにディバイダをクリアします。
    def reset_divider(self) -> None:
        self.counter = 0

    def read(self, address: int) -> int:
        if address == DIV:
            return (self.counter >> 8) & 0xFF
        if address == TIMA:
            return self.tima
        if address == TMA:
            return self.tma
        return 0xF8 | self.tac

    def write(self, address: int, data: int) -> None:
        if address == DIV:
            self.counter = 0
        elif address == TIMA:
            self.tima = data & 0xFF
        elif address == TMA:
            self.tma = data & 0xFF
        else:
            self.tac = data & 0x07

    # @intent:responsibility 経過サイクル数だけ内部カウンタを進め、選択周期の境界を跨いだ回数だけTIMAを進めます。
    def tick(self, cycles: int) -> None:
        start = self.counter
        end = start + cycles
        self.counter = end & 0xFFFF
        if not self.enabled:
            return
        period = self.period
        for _ in range(end // period - start // period):
            self.tima += 1
            if self.tima > 0xFF:
                self.tima = self.tma
                self._raise_interrupt(InterruptSource.TIMER)

    def dump_state(self) -> bytes:
        return _STATE.pack(self.counter, self.tima, self.tma, self.tac)

    def load_state(self, data: bytes) -> None:
        self.counter, self.tima, self.tma, self.tac = _STATE.unpack(data)
