# retro_gb_core/cartridge/controllers.py
"""
カートリッジ（メモリバンクコントローラ）の実装。

バスはROMウィンドウ(0x0000-0x7FFF)の読み出しを read_rom に、書き込みを write_control に、
外部RAMウィンドウ(0xA000-0xBFFF)を read_ram / write_ram に転送します。
コントローラの種別はロード時にヘッダから一度だけ選択され、アクセス毎の分岐は行いません。
"""
import logging
import struct
from abc import abstractmethod
from typing import List, Tuple

from retro_gb_core.core.errors import SaveStateError
from retro_gb_core.core.savestate import Stateful
from retro_gb_core.cartridge.header import CartridgeHeader, ROM_BANK_SIZE, RAM_BANK_SIZE

logger = logging.getLogger(__name__)

OPEN_BUS_VALUE = 0xFF


# @intent:responsibility カートリッジの能力セット（ROM読み出し、バンク制御、外部RAM）を定義します。
class Cartridge(Stateful):
    """
    全てのカートリッジ種別の基底クラス。

    サブクラスはバンクレジスタを `_registers` 構造体で宣言し、
    `_get_registers()` / `_set_registers()` を実装することでセーブステートに参加します。
    """
    _registers = struct.Struct(">")

    def __init__(self, rom: bytes, header: CartridgeHeader, ram_size: int = 0):
        self._rom = bytes(rom)
        self._header = header
        self._ram = bytearray(ram_size)
        self._rom_bank_count = max(2, (len(self._rom) + ROM_BANK_SIZE - 1) // ROM_BANK_SIZE)

    def header(self) -> CartridgeHeader:
        return self._header

    @property
    def rom_bank_count(self) -> int:
        return self._rom_bank_count

    # @intent:utility_function 指定バンク内のオフセットのROMバイトを返します。バンク番号はROMサイズで折り返されます。
    def _rom_byte(self, bank: int, offset: int) -> int:
        index = (bank % self._rom_bank_count) * ROM_BANK_SIZE + offset
        if index >= len(self._rom):
            return OPEN_BUS_VALUE
        return self._rom[index]

    # @intent:responsibility ROMウィンドウ(0x0000-0x7FFF)からの読み出し。
    @abstractmethod
    def read_rom(self, address: int) -> int:
        pass

    # @intent:responsibility ROMウィンドウへの書き込みをバンク制御として解釈します。
    @abstractmethod
    def write_control(self, address: int, value: int) -> None:
        pass

    # @intent:responsibility 外部RAMウィンドウ(オフセット0x0000-0x1FFF)からの読み出し。
    def read_ram(self, offset: int) -> int:
        return OPEN_BUS_VALUE

    def write_ram(self, offset: int, value: int) -> None:
        # Intentional: no external RAM.
        pass

    # @intent:responsibility 外部のバッテリーセーブ機構のためにRAM内容を公開します。
    def ram_bytes(self) -> bytes:
        return bytes(self._ram)

    def load_ram(self, data: bytes) -> None:
        if len(data) != len(self._ram):
            raise ValueError(f"Cartridge RAM image size {len(data)} does not match {len(self._ram)}.")
        self._ram[:] = data

    # @intent:responsibility バンク制御レジスタを電源投入時の値に戻します。外部RAMはバッテリーバックアップとして保持されます。
    def reset(self) -> None:
        pass

    def _get_registers(self) -> Tuple:
        return ()

    def _set_registers(self, values: Tuple) -> None:
        pass

    def dump_state(self) -> bytes:
        return self._registers.pack(*self._get_registers()) + bytes(self._ram)

    def load_state(self, data: bytes) -> None:
        size = self._registers.size
        if len(data) != size + len(self._ram):
            raise SaveStateError(f"Cartridge state size {len(data)} does not match {size + len(self._ram)}.")
        self._set_registers(self._registers.unpack(data[:size]))
        self._ram[:] = data[size:]


# @intent:responsibility バンク切り替えを持たない32KiBカートリッジ（任意で8KiBのRAM）。
class RomOnly(Cartridge):
    def __init__(self, rom: bytes, header: CartridgeHeader):
        super().__init__(rom, header, header.ram_size if header.mbc_type in (0x08, 0x09) else 0)

    def read_rom(self, address: int) -> int:
        if address >= len(self._rom):
            return OPEN_BUS_VALUE
        return self._rom[address]

    def write_control(self, address: int, value: int) -> None:
        logger.debug("Ignored ROM write %#04x to %#06x (no bank controller)", value, address)

    def read_ram(self, offset: int) -> int:
        if offset >= len(self._ram):
            return OPEN_BUS_VALUE
        return self._ram[offset]

    def write_ram(self, offset: int, value: int) -> None:
        if offset < len(self._ram):
            self._ram[offset] = value


# @intent:responsibility MBC1: 5ビットのROMバンク、2ビットの上位バンク/RAMバンク、バンキングモード。
class Mbc1(Cartridge):
    _registers = struct.Struct(">?BBB")

    def __init__(self, rom: bytes, header: CartridgeHeader):
        super().__init__(rom, header, header.ram_size)
        self.reset()

    def reset(self) -> None:
        self.ram_enabled = False
        self.rom_bank = 1
        self.upper_bank = 0
        self.mode = 0

    def read_rom(self, address: int) -> int:
        if address < ROM_BANK_SIZE:
            bank = (self.upper_bank << 5) if self.mode else 0
            return self._rom_byte(bank, address)
        return self._rom_byte((self.upper_bank << 5) | self.rom_bank, address - ROM_BANK_SIZE)

    def write_control(self, address: int, value: int) -> None:
        if address < 0x2000:
            self.ram_enabled = (value & 0x0F) == 0x0A
        elif address < 0x4000:
            # バンク0は選択できず、1として扱われる
            self.rom_bank = (value & 0x1F) or 1
        elif address < 0x6000:
            self.upper_bank = value & 0x03
        else:
            self.mode = value & 0x01

    def _ram_index(self, offset: int) -> int:
        bank = self.upper_bank if self.mode else 0
        return bank * RAM_BANK_SIZE + offset

    def read_ram(self, offset: int) -> int:
        index = self._ram_index(offset)
        if not self.ram_enabled or index >= len(self._ram):
            return OPEN_BUS_VALUE
        return self._ram[index]

    def write_ram(self, offset: int, value: int) -> None:
        index = self._ram_index(offset)
        if self.ram_enabled and index < len(self._ram):
            self._ram[index] = value

    def _get_registers(self) -> Tuple:
        return (self.ram_enabled, self.rom_bank, self.upper_bank, self.mode)

    def _set_registers(self, values: Tuple) -> None:
        self.ram_enabled, self.rom_bank, self.upper_bank, self.mode = values


# @intent:responsibility MBC2: 4ビットのROMバンクと、512×4ビットの内蔵RAM。
class Mbc2(Cartridge):
    _registers = struct.Struct(">?B")
    RAM_SIZE = 0x200

    def __init__(self, rom: bytes, header: CartridgeHeader):
        super().__init__(rom, header, self.RAM_SIZE)
        self.reset()

    def reset(self) -> None:
        self.ram_enabled = False
        self.rom_bank = 1

    def read_rom(self, address: int) -> int:
        if address < ROM_BANK_SIZE:
            return self._rom_byte(0, address)
        return self._rom_byte(self.rom_bank, address - ROM_BANK_SIZE)

    def write_control(self, address: int, value: int) -> None:
        if address >= 0x4000:
            return
        # アドレスのビット8でRAM許可とROMバンク選択を区別する
        if address & 0x0100:
            self.rom_bank = (value & 0x0F) or 1
        else:
            self.ram_enabled = (value & 0x0F) == 0x0A

    def read_ram(self, offset: int) -> int:
        if not self.ram_enabled:
            return OPEN_BUS_VALUE
        return 0xF0 | self._ram[offset & 0x1FF]

    def write_ram(self, offset: int, value: int) -> None:
        if self.ram_enabled:
            self._ram[offset & 0x1FF] = value & 0x0F

    def _get_registers(self) -> Tuple:
        return (self.ram_enabled, self.rom_bank)

    def _set_registers(self, values: Tuple) -> None:
        self.ram_enabled, self.rom_bank = values


# @intent:responsibility MBC3: 7ビットのROMバンク、4つのRAMバンク、RTCレジスタ。
# @intent:rationale RTCはラッチと読み書きのみを行い、時間経過による更新はしません。
class Mbc3(Cartridge):
    _registers = struct.Struct(">?BBB5B5B")
    RTC_SELECT = range(0x08, 0x0D)

    def __init__(self, rom: bytes, header: CartridgeHeader):
        super().__init__(rom, header, header.ram_size)
        self.rtc: List[int] = [0] * 5 # S, M, H, DL, DH
        self.reset()

    # RTCのカウンタ値は電源断後も保持される
    def reset(self) -> None:
        self.ram_enabled = False
        self.rom_bank = 1
        self.ram_select = 0
        self._latch_armed = 0
        self.latched_rtc = [0] * 5

    def read_rom(self, address: int) -> int:
        if address < ROM_BANK_SIZE:
            return self._rom_byte(0, address)
        return self._rom_byte(self.rom_bank, address - ROM_BANK_SIZE)

    def write_control(self, address: int, value: int) -> None:
        if address < 0x2000:
            self.ram_enabled = (value & 0x0F) == 0x0A
        elif address < 0x4000:
            self.rom_bank = (value & 0x7F) or 1
        elif address < 0x6000:
            self.ram_select = value & 0x0F
        else:
            # 0 -> 1 の書き込みで現在のRTC値をラッチする
            if self._latch_armed == 0 and value == 1:
                self.latched_rtc = list(self.rtc)
            self._latch_armed = value

    def read_ram(self, offset: int) -> int:
        if not self.ram_enabled:
            return OPEN_BUS_VALUE
        if self.ram_select in self.RTC_SELECT:
            return self.latched_rtc[self.ram_select - 0x08]
        index = (self.ram_select & 0x03) * RAM_BANK_SIZE + offset
        if index >= len(self._ram):
            return OPEN_BUS_VALUE
        return self._ram[index]

    def write_ram(self, offset: int, value: int) -> None:
        if not self.ram_enabled:
            return
        if self.ram_select in self.RTC_SELECT:
            self.rtc[self.ram_select - 0x08] = value
            return
        index = (self.ram_select & 0x03) * RAM_BANK_SIZE + offset
        if index < len(self._ram):
            self._ram[index] = value

    def _get_registers(self) -> Tuple:
        return (self.ram_enabled, self.rom_bank, self.ram_select, self._latch_armed,
                *self.rtc, *self.latched_rtc)

    def _set_registers(self, values: Tuple) -> None:
        self.ram_enabled, self.rom_bank, self.ram_select, self._latch_armed = values[:4]
        self.rtc = list(values[4:9])
        self.latched_rtc = list(values[9:14])


# @intent:responsibility MBC5: 9ビットのROMバンク（バンク0も選択可）と16のRAMバンク。
class Mbc5(Cartridge):
    _registers = struct.Struct(">?HB")

    def __init__(self, rom: bytes, header: CartridgeHeader):
        super().__init__(rom, header, header.ram_size)
        self.reset()

    def reset(self) -> None:
        self.ram_enabled = False
        self.rom_bank = 1
        self.ram_bank = 0

    def read_rom(self, address: int) -> int:
        if address < ROM_BANK_SIZE:
            return self._rom_byte(0, address)
        return self._rom_byte(self.rom_bank, address - ROM_BANK_SIZE)

    def write_control(self, address: int, value: int) -> None:
        if address < 0x2000:
            self.ram_enabled = (value & 0x0F) == 0x0A
        elif address < 0x3000:
            self.rom_bank = (self.rom_bank & 0x100) | value
        elif address < 0x4000:
            self.rom_bank = (self.rom_bank & 0xFF) | ((value & 0x01) << 8)
        elif address < 0x6000:
            self.ram_bank = value & 0x0F

    def _ram_index(self, offset: int) -> int:
        return self.ram_bank * RAM_BANK_SIZE + offset

    def read_ram(self, offset: int) -> int:
        index = self._ram_index(offset)
        if not self.ram_enabled or index >= len(self._ram):
            return OPEN_BUS_VALUE
        return self._ram[index]

    def write_ram(self, offset: int, value: int) -> None:
        index = self._ram_index(offset)
        if self.ram_enabled and index < len(self._ram):
            self._ram[index] = value

    def _get_registers(self) -> Tuple:
        return (self.ram_enabled, self.rom_bank, self.ram_bank)

    def _set_registers(self, values: Tuple) -> None:
        self.ram_enabled, self.rom_bank, self.ram_bank = values
