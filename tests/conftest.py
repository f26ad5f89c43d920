# tests/conftest.py
"""
テスト共通のフィクスチャ。
ヘッダが正しい最小限のROMイメージと、それを装着したMachineを生成します。
"""
import pytest

from retro_gb_core.cartridge.header import (
    compute_header_checksum, TITLE_START, CARTRIDGE_TYPE, ROM_SIZE, RAM_SIZE, HEADER_CHECKSUM, ROM_BANK_SIZE
)
from retro_gb_core.cartridge.loader import load_cartridge
from retro_gb_core.system.machine import Machine

ENTRY_POINT = 0x0100
CODE_START = 0x0150


def build_rom(code: bytes = b"", entry: bytes = None, mbc_type: int = 0x00, rom_code: int = 0x00,
              ram_code: int = 0x00, title: bytes = b"TEST", mark_banks: bool = False,
              fix_checksum: bool = True) -> bytes:
    """
    32KiB << rom_code のROMイメージを生成します。
    entry を省略した場合、0x0100 には JP $0150 が置かれ、code は 0x0150 から配置されます。
    mark_banks=True のとき、各バンクの先頭2バイトにバンク番号（下位, 上位）を書き込みます。
    """
    rom = bytearray(0x8000 << rom_code)
    if mark_banks:
        for bank in range(len(rom) // ROM_BANK_SIZE):
            rom[bank * ROM_BANK_SIZE] = bank & 0xFF
            rom[bank * ROM_BANK_SIZE + 1] = bank >> 8

    if entry is None:
        entry = bytes([0xC3, CODE_START & 0xFF, CODE_START >> 8])
    rom[ENTRY_POINT:ENTRY_POINT + len(entry)] = entry
    rom[CODE_START:CODE_START + len(code)] = code

    rom[TITLE_START:TITLE_START + len(title)] = title
    rom[CARTRIDGE_TYPE] = mbc_type
    rom[ROM_SIZE] = rom_code
    rom[RAM_SIZE] = ram_code
    checksum = compute_header_checksum(rom)
    rom[HEADER_CHECKSUM] = checksum if fix_checksum else (checksum ^ 0xFF)
    return bytes(rom)


@pytest.fixture
def make_rom():
    return build_rom


@pytest.fixture
def make_machine():
    """ROMを生成して装着し、電源投入済みのMachineを返すファクトリ。"""
    def _make(code: bytes = b"", strict_addressing: bool = False, **rom_options) -> Machine:
        machine = Machine(strict_addressing=strict_addressing)
        machine.power_on(load_cartridge(build_rom(code, **rom_options)))
        return machine
    return _make
