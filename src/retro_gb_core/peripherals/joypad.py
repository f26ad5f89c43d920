# retro_gb_core/peripherals/joypad.py
"""
ジョイパッド (0xFF00, P1)。

ビット5が0のときボタン（A, B, SELECT, START）、ビット4が0のとき方向キーが
ビット3-0に読み出されます。押されているボタンは0として読めます。
"""
import logging
import struct
from enum import Enum
from typing import Optional, Set, Union

from retro_gb_core.arch.lr35902.interrupts import InterruptSource
from retro_gb_core.peripherals.base import Peripheral, InterruptRequester

logger = logging.getLogger(__name__)

SELECT_DIRECTIONS = 0x10
SELECT_ACTIONS = 0x20

_STATE = struct.Struct(">BB")


# @intent:data_structure ボタンと、その選択ライン・ビット位置の対応。
class JoypadButton(Enum):
    RIGHT = (SELECT_DIRECTIONS, 0)
    LEFT = (SELECT_DIRECTIONS, 1)
    UP = (SELECT_DIRECTIONS, 2)
    DOWN = (SELECT_DIRECTIONS, 3)
    A = (SELECT_ACTIONS, 0)
    B = (SELECT_ACTIONS, 1)
    SELECT = (SELECT_ACTIONS, 2)
    START = (SELECT_ACTIONS, 3)

    @property
    def line(self) -> int:
        return self.value[0]

    @property
    def bit(self) -> int:
        return self.value[1]


# @intent:responsibility P1レジスタとボタンの押下状態を管理し、入力でJOYPAD割り込みを要求します。
class Joypad(Peripheral):
    def __init__(self, request_interrupt: Optional[InterruptRequester] = None):
        super().__init__(request_interrupt)
        self.reset()

    def reset(self) -> None:
        self.select = SELECT_DIRECTIONS | SELECT_ACTIONS # どちらも非選択
        self._pressed: Set[JoypadButton] = set()

    @staticmethod
    def _resolve(button: Union[JoypadButton, str]) -> JoypadButton:
        if isinstance(button, JoypadButton):
            return button
        return JoypadButton[button.upper()]

    # @intent:utility_function 現在の選択ラインで読み出される下位4ビット（押下=0）を返します。
    def _lines(self) -> int:
        value = 0x0F
        for button in self._pressed:
            if not (self.select & button.line):
                value &= ~(1 << button.bit)
        return value

    def read(self, address: int) -> int:
        return 0xC0 | self.select | self._lines()

    def write(self, address: int, data: int) -> None:
        before = self._lines()
        self.select = data & (SELECT_DIRECTIONS | SELECT_ACTIONS)
        self._notify_falling_edge(before)

    def press(self, button: Union[JoypadButton, str]) -> None:
        before = self._lines()
        self._pressed.add(self._resolve(button))
        self._notify_falling_edge(before)

    def release(self, button: Union[JoypadButton, str]) -> None:
        self._pressed.discard(self._resolve(button))

    def is_pressed(self, button: Union[JoypadButton, str]) -> bool:
        return self._resolve(button) in self._pressed

    # @intent:responsibility 選択中のラインのいずれかが1から0に変化した場合にJOYPAD割り込みを要求します。
    def _notify_falling_edge(self, before: int) -> None:
        if before & ~self._lines() & 0x0F:
            logger.debug("Joypad line low (P1=%02X)", self.read(0))
            self._raise_interrupt(InterruptSource.JOYPAD)

    def dump_state(self) -> bytes:
        mask = 0
        for button in self._pressed:
            mask |= 1 << list(JoypadButton).index(button)
        return _STATE.pack(self.select, mask)

    def load_state(self, data: bytes) -> None:
        self.select, mask = _STATE.unpack(data)
        self._pressed = {b for i, b in enumerate(JoypadButton) if mask & (1 << i)}
