# retro_gb_core/peripherals/video.py
"""
ビデオメモリとLCDレジスタ。

VRAM (0x8000-0x9FFF)、OAM (0xFE00-0xFE9F)、LCDレジスタ (0xFF40-0xFF4B) を
記憶領域として保持します。描画やスキャンラインのタイミングは扱わず、
外部のビデオコンポーネントが set_ly / set_mode を通じて状態を更新します。
"""
from typing import Optional

from retro_gb_core.transport.bus import Bus, Device, RAM
from retro_gb_core.peripherals.base import Peripheral, InterruptRequester

VRAM_SIZE = 0x2000
OAM_SIZE = 0xA0

LCDC, STAT, SCY, SCX, LY, LYC, DMA, BGP, OBP0, OBP1, WY, WX = range(12)
LCD_REGISTER_COUNT = 12

# ブートROM実行直後の値
POST_BOOT_REGISTERS = (0x91, 0x85, 0x00, 0x00, 0x00, 0x00, 0xFF, 0xFC, 0xFF, 0xFF, 0x00, 0x00)

STAT_READ_ONLY = 0x07 # モード(ビット1-0)とLY一致フラグ(ビット2)


# @intent:responsibility LCD制御・状態・スクロール・パレットのレジスタファイルです。
class LcdRegisters(Device):
    def __init__(self):
        self._registers = bytearray(POST_BOOT_REGISTERS)

    def reset(self) -> None:
        self._registers[:] = bytes(POST_BOOT_REGISTERS)

    def read(self, address: int) -> int:
        if address == STAT:
            return 0x80 | self._registers[STAT]
        return self._registers[address]

    def write(self, address: int, data: int) -> None:
        if address == LY:
            # LYは読み出し専用
            return
        if address == STAT:
            data = (data & ~STAT_READ_ONLY & 0x7F) | (self._registers[STAT] & STAT_READ_ONLY)
        self._registers[address] = data & 0xFF

    # @intent:responsibility 外部のビデオコンポーネントが現在のスキャンラインを設定します。LYC一致フラグも更新されます。
    def set_ly(self, line: int) -> None:
        self._registers[LY] = line & 0xFF
        if self._registers[LY] == self._registers[LYC]:
            self._registers[STAT] |= 0x04
        else:
            self._registers[STAT] &= ~0x04 & 0xFF

    def set_mode(self, mode: int) -> None:
        self._registers[STAT] = (self._registers[STAT] & ~0x03 & 0xFF) | (mode & 0x03)

    def dump(self) -> bytes:
        return bytes(self._registers)

    def load(self, data: bytes) -> None:
        if len(data) != LCD_REGISTER_COUNT:
            raise ValueError(f"LCD register image size {len(data)} does not match {LCD_REGISTER_COUNT}.")
        self._registers[:] = data


# @intent:responsibility 0xFF46への書き込みで、XX00-XX9Fの160バイトをOAMへ転送します。
# @intent:rationale 転送は書き込み命令の中で同期的に完了させ、転送中のバス競合はモデル化しません。
class OamDma(Device):
    def __init__(self, bus: Bus, oam: RAM, registers: LcdRegisters):
        self._bus = bus
        self._oam = oam
        self._registers = registers

    def read(self, address: int) -> int:
        return self._registers.read(DMA)

    def write(self, address: int, data: int) -> None:
        self._registers.write(DMA, data)
        source = (data & 0xFF) << 8
        for i in range(OAM_SIZE):
            self._oam.write(i, self._bus.peek((source + i) & 0xFFFF))


# @intent:responsibility VRAM、OAM、LCDレジスタをまとめて保持します。
class VideoMemory(Peripheral):
    def __init__(self, request_interrupt: Optional[InterruptRequester] = None):
        super().__init__(request_interrupt)
        self.vram = RAM(VRAM_SIZE)
        self.oam = RAM(OAM_SIZE)
        self.registers = LcdRegisters()

    def reset(self) -> None:
        self.vram.clear()
        self.oam.clear()
        self.registers.reset()

    # VideoMemory自体はLCDレジスタウィンドウとしてバスに登録される
    def read(self, address: int) -> int:
        return self.registers.read(address)

    def write(self, address: int, data: int) -> None:
        self.registers.write(address, data)

    def dump_state(self) -> bytes:
        return self.vram.dump() + self.oam.dump() + self.registers.dump()

    def load_state(self, data: bytes) -> None:
        expected = VRAM_SIZE + OAM_SIZE + LCD_REGISTER_COUNT
        if len(data) != expected:
            raise ValueError(f"Video state size {len(data)} does not match {expected}.")
        self.vram.load(data[:VRAM_SIZE])
        self.oam.load(data[VRAM_SIZE:VRAM_SIZE + OAM_SIZE])
        self.registers.load(data[VRAM_SIZE + OAM_SIZE:])
