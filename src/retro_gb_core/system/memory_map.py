# retro_gb_core/system/memory_map.py
"""
DMGのメモリマップ構築。

Busは登録順に領域を検索するため、単一アドレスのレジスタ（IE, IF, DMA）や
I/Oウィンドウ内の周辺機器を、より広い領域よりも先に登録します。
全ての16ビットアドレスがいずれかの領域に解決されます。
"""
from typing import Optional

from retro_gb_core.transport.bus import Bus, Device, RAM, Mirror, OpenBus
from retro_gb_core.cartridge.controllers import Cartridge, OPEN_BUS_VALUE
from retro_gb_core.arch.lr35902.interrupts import (
    InterruptController, InterruptEnableRegister, InterruptFlagRegister
)
from retro_gb_core.peripherals.timer import Timer
from retro_gb_core.peripherals.joypad import Joypad
from retro_gb_core.peripherals.serial import Serial
from retro_gb_core.peripherals.video import VideoMemory, OamDma

WRAM_SIZE = 0x2000
HRAM_SIZE = 0x7F


# @intent:responsibility 挿抜可能なカートリッジへの参照を保持します。未装着時はオープンバスとして振る舞います。
class CartridgeSlot:
    def __init__(self, cartridge: Optional[Cartridge] = None):
        self.cartridge = cartridge


# @intent:responsibility ROMウィンドウ(0x0000-0x7FFF)をカートリッジに転送します。書き込みはバンク制御になります。
class CartridgeRomWindow(Device):
    def __init__(self, slot: CartridgeSlot):
        self._slot = slot

    def read(self, address: int) -> int:
        cartridge = self._slot.cartridge
        return cartridge.read_rom(address) if cartridge else OPEN_BUS_VALUE

    def write(self, address: int, data: int) -> None:
        cartridge = self._slot.cartridge
        if cartridge:
            cartridge.write_control(address, data)


# @intent:responsibility 外部RAMウィンドウ(0xA000-0xBFFF)をカートリッジに転送します。
class CartridgeRamWindow(Device):
    def __init__(self, slot: CartridgeSlot):
        self._slot = slot

    def read(self, address: int) -> int:
        cartridge = self._slot.cartridge
        return cartridge.read_ram(address) if cartridge else OPEN_BUS_VALUE

    def write(self, address: int, data: int) -> None:
        cartridge = self._slot.cartridge
        if cartridge:
            cartridge.write_ram(address, data)


# @intent:responsibility DMGのメモリマップを固定の優先順位でバスに登録します。
# @intent:pre-condition busは空である必要があります（既存の登録があるとそちらが優先されます）。
def map_dmg_devices(bus: Bus, interrupts: InterruptController, slot: CartridgeSlot,
                    wram: RAM, hram: RAM, video: VideoMemory,
                    timer: Timer, joypad: Joypad, serial: Serial) -> None:
    # 単一アドレスのレジスタ
    bus.register_device(0xFFFF, 0xFFFF, InterruptEnableRegister(interrupts))
    bus.register_device(0xFF0F, 0xFF0F, InterruptFlagRegister(interrupts))
    bus.register_device(0xFF46, 0xFF46, OamDma(bus, video.oam, video.registers))
    # I/Oウィンドウ内の周辺機器
    bus.register_device(0xFF00, 0xFF00, joypad)
    bus.register_device(0xFF01, 0xFF02, serial)
    bus.register_device(0xFF04, 0xFF07, timer)
    bus.register_device(0xFF40, 0xFF4B, video)
    bus.register_device(0xFF80, 0xFFFE, hram)
    # 未実装のI/Oレジスタ（サウンドなど）
    bus.register_device(0xFF00, 0xFF7F, OpenBus())
    # 汎用領域
    bus.register_device(0x0000, 0x7FFF, CartridgeRomWindow(slot))
    bus.register_device(0x8000, 0x9FFF, video.vram)
    bus.register_device(0xA000, 0xBFFF, CartridgeRamWindow(slot))
    bus.register_device(0xC000, 0xDFFF, wram)
    bus.register_device(0xE000, 0xFDFF, Mirror(wram))
    bus.register_device(0xFE00, 0xFE9F, video.oam)
    bus.register_device(0xFEA0, 0xFEFF, OpenBus())
