# tests/cartridge/test_cartridge.py
"""
retro_gb_core.cartridgeパッケージの単体テスト。
ヘッダ解析、コントローラの選択、各MBCのバンク切り替えと外部RAMを検証します。
"""
import logging

import pytest

from retro_gb_core.core.errors import CartridgeError, SaveStateError
from retro_gb_core.cartridge.header import CartridgeHeader
from retro_gb_core.cartridge.controllers import RomOnly, Mbc1, Mbc2, Mbc3, Mbc5, OPEN_BUS_VALUE
from retro_gb_core.cartridge.loader import load_cartridge, load_cartridge_file

# @intent:test_suite カートリッジヘッダの解析を検証します。

class TestCartridgeHeader:

    def test_parse(self, make_rom):
        header = CartridgeHeader.parse(make_rom(title=b"HELLO", mbc_type=0x03, rom_code=0x02, ram_code=0x03))
        assert header.title == "HELLO"
        assert header.mbc_type == 0x03
        assert header.rom_size == 0x20000
        assert header.rom_banks == 8
        assert header.ram_size == 0x8000
        assert header.checksum_valid

    # @intent:test_case_cgb_title CGBフラグが立っている場合、タイトルは15文字に制限されます。
    def test_cgb_title(self, make_rom):
        header = CartridgeHeader.parse(make_rom(title=b"ABCDEFGHIJKLMNO\x80"))
        assert header.cgb_flag == 0x80
        assert header.title == "ABCDEFGHIJKLMNO"

    def test_bad_checksum_detected(self, make_rom):
        header = CartridgeHeader.parse(make_rom(fix_checksum=False))
        assert not header.checksum_valid

    def test_too_small(self):
        with pytest.raises(CartridgeError, match="too small"):
            CartridgeHeader.parse(bytes(0x100))

    def test_unsupported_size_codes(self, make_rom):
        rom = bytearray(make_rom())
        rom[0x0148] = 0x09
        with pytest.raises(CartridgeError, match="ROM size"):
            CartridgeHeader.parse(bytes(rom))
        rom[0x0148] = 0x00
        rom[0x0149] = 0x06
        with pytest.raises(CartridgeError, match="RAM size"):
            CartridgeHeader.parse(bytes(rom))


# @intent:test_suite ヘッダに基づくコントローラの選択を検証します。

class TestLoader:

    @pytest.mark.parametrize("mbc_type, controller", [
        (0x00, RomOnly), (0x01, Mbc1), (0x03, Mbc1), (0x05, Mbc2), (0x06, Mbc2),
        (0x0F, Mbc3), (0x13, Mbc3), (0x19, Mbc5), (0x1E, Mbc5),
    ])
    def test_selects_controller(self, make_rom, mbc_type, controller):
        cartridge = load_cartridge(make_rom(mbc_type=mbc_type))
        assert type(cartridge) is controller
        assert cartridge.header().mbc_type == mbc_type

    def test_unsupported_type(self, make_rom):
        with pytest.raises(CartridgeError, match="Unsupported cartridge type"):
            load_cartridge(make_rom(mbc_type=0x20))

    # @intent:test_case_checksum チェックサム不一致は警告として記録され、ロードは継続されます。
    def test_checksum_mismatch_is_warning(self, make_rom, caplog):
        with caplog.at_level(logging.WARNING, logger="retro_gb_core.cartridge.loader"):
            cartridge = load_cartridge(make_rom(fix_checksum=False))
        assert isinstance(cartridge, RomOnly)
        assert "checksum mismatch" in caplog.text

    def test_short_image_is_warning(self, make_rom, caplog):
        rom = make_rom(rom_code=0x01)[:0x8000]
        with caplog.at_level(logging.WARNING, logger="retro_gb_core.cartridge.loader"):
            load_cartridge(rom)
        assert "header declares" in caplog.text

    def test_load_from_file(self, make_rom, tmp_path):
        path = tmp_path / "game.gb"
        path.write_bytes(make_rom(title=b"FILE"))
        assert load_cartridge_file(str(path)).header().title == "FILE"


# @intent:test_suite 各バンクコントローラの動作を検証します。

class TestRomOnly:

    def test_reads_and_ignores_writes(self, make_rom):
        cartridge = load_cartridge(make_rom(entry=bytes([0x00, 0x3E, 0x42])))
        assert cartridge.read_rom(0x0102) == 0x42
        cartridge.write_control(0x2000, 0x05)
        assert cartridge.read_rom(0x0102) == 0x42
        assert cartridge.read_ram(0x0000) == OPEN_BUS_VALUE

    def test_optional_ram(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x08, ram_code=0x02))
        cartridge.write_ram(0x0010, 0x99)
        assert cartridge.read_ram(0x0010) == 0x99


class TestMbc1:

    def test_rom_bank_switching(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x01, rom_code=0x04, mark_banks=True))
        assert cartridge.read_rom(0x4000) == 1 # 初期値はバンク1
        cartridge.write_control(0x2000, 0x05)
        assert cartridge.read_rom(0x4000) == 5
        # バンク0の指定は1として扱われる
        cartridge.write_control(0x2000, 0x00)
        assert cartridge.read_rom(0x4000) == 1
        cartridge.write_control(0x3FFF, 0x20)
        assert cartridge.read_rom(0x4000) == 1

    def test_upper_bank_and_mode(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x01, rom_code=0x05, mark_banks=True))
        cartridge.write_control(0x2000, 0x02)
        cartridge.write_control(0x4000, 0x01)
        assert cartridge.read_rom(0x4000) == 34
        assert cartridge.read_rom(0x0000) == 0 # モード0では0x0000-0x3FFFはバンク0
        cartridge.write_control(0x6000, 0x01)
        assert cartridge.read_rom(0x0000) == 32

    def test_bank_number_wraps_to_rom_size(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x01, mark_banks=True))
        cartridge.write_control(0x2000, 0x03)
        assert cartridge.read_rom(0x4000) == 1

    def test_ram_enable_and_banking(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x03, ram_code=0x03))
        cartridge.write_ram(0x0000, 0x55)
        assert cartridge.read_ram(0x0000) == OPEN_BUS_VALUE # 無効時は書き込みも無視

        cartridge.write_control(0x0000, 0x0A)
        cartridge.write_ram(0x0000, 0x55)
        assert cartridge.read_ram(0x0000) == 0x55

        cartridge.write_control(0x4000, 0x02)
        assert cartridge.read_ram(0x0000) == 0x55 # モード0ではRAMバンク0固定
        cartridge.write_control(0x6000, 0x01)
        assert cartridge.read_ram(0x0000) == 0x00
        cartridge.write_ram(0x0000, 0x66)
        assert cartridge.ram_bytes()[2 * 0x2000] == 0x66

        cartridge.write_control(0x0000, 0x00)
        assert cartridge.read_ram(0x0000) == OPEN_BUS_VALUE

    def test_state_round_trip(self, make_rom):
        rom = make_rom(mbc_type=0x03, rom_code=0x02, ram_code=0x02, mark_banks=True)
        cartridge = load_cartridge(rom)
        cartridge.write_control(0x0000, 0x0A)
        cartridge.write_control(0x2000, 0x06)
        cartridge.write_ram(0x0123, 0x77)
        data = cartridge.dump_state()

        other = load_cartridge(rom)
        other.load_state(data)
        assert other.read_rom(0x4000) == 6
        assert other.read_ram(0x0123) == 0x77

        with pytest.raises(SaveStateError):
            other.load_state(data[:-1])

    def test_ram_bytes_and_load_ram(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x03, ram_code=0x02))
        cartridge.load_ram(bytes([0xAB]) * 0x2000)
        cartridge.write_control(0x0000, 0x0A)
        assert cartridge.read_ram(0x1FFF) == 0xAB
        with pytest.raises(ValueError):
            cartridge.load_ram(b"\x00")

    # @intent:test_case_reset resetはバンクレジスタを初期値に戻し、外部RAMの内容は保持します。
    def test_reset_restores_bank_registers(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x03, rom_code=0x06, ram_code=0x02, mark_banks=True))
        cartridge.write_control(0x0000, 0x0A)
        cartridge.write_ram(0x0010, 0x5A)
        cartridge.write_control(0x2000, 0x05)
        cartridge.write_control(0x4000, 0x01)
        cartridge.write_control(0x6000, 0x01)
        assert cartridge.read_rom(0x4000) == 0x25

        cartridge.reset()
        assert cartridge.read_rom(0x4000) == 1
        assert cartridge.read_rom(0x0000) == 0
        assert cartridge.read_ram(0x0010) == 0xFF
        cartridge.write_control(0x0000, 0x0A)
        assert cartridge.read_ram(0x0010) == 0x5A


class TestMbc2:

    def test_rom_bank_uses_address_bit_8(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x05, rom_code=0x03, mark_banks=True))
        cartridge.write_control(0x2100, 0x03)
        assert cartridge.read_rom(0x4000) == 3
        # ビット8が0の書き込みはRAM許可として解釈される
        cartridge.write_control(0x2000, 0x05)
        assert cartridge.read_rom(0x4000) == 3

    def test_nibble_ram(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x06))
        cartridge.write_control(0x0000, 0x0A)
        cartridge.write_ram(0x0000, 0xAB)
        assert cartridge.read_ram(0x0000) == 0xFB
        # 512バイトの領域が繰り返し見える
        assert cartridge.read_ram(0x0200) == 0xFB


class TestMbc3:

    def test_rom_bank(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x13, rom_code=0x06, mark_banks=True))
        cartridge.write_control(0x2000, 0x7F)
        assert cartridge.read_rom(0x4000) == 0x7F
        cartridge.write_control(0x2000, 0x00)
        assert cartridge.read_rom(0x4000) == 1

    # @intent:test_case_rtc RTCレジスタは0->1の書き込みでラッチされた値が読み出されます。
    def test_rtc_latch(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x10, ram_code=0x03))
        cartridge.write_control(0x0000, 0x0A)
        cartridge.write_control(0x4000, 0x08) # 秒
        cartridge.write_ram(0x0000, 30)
        assert cartridge.read_ram(0x0000) == 0

        cartridge.write_control(0x6000, 0x00)
        cartridge.write_control(0x6000, 0x01)
        assert cartridge.read_ram(0x0000) == 30

        cartridge.write_control(0x4000, 0x01) # RAMバンク1
        cartridge.write_ram(0x0010, 0x42)
        assert cartridge.ram_bytes()[0x2010] == 0x42

    def test_state_includes_rtc(self, make_rom):
        rom = make_rom(mbc_type=0x10, ram_code=0x03)
        cartridge = load_cartridge(rom)
        cartridge.write_control(0x0000, 0x0A)
        cartridge.write_control(0x4000, 0x0A) # 時
        cartridge.write_ram(0x0000, 12)
        cartridge.write_control(0x6000, 0x00)
        cartridge.write_control(0x6000, 0x01)

        other = load_cartridge(rom)
        other.load_state(cartridge.dump_state())
        assert other.read_ram(0x0000) == 12

    def test_reset_keeps_rtc_counters(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x10, rom_code=0x02, ram_code=0x03, mark_banks=True))
        cartridge.write_control(0x0000, 0x0A)
        cartridge.write_control(0x2000, 0x03)
        cartridge.write_control(0x4000, 0x09) # 分
        cartridge.write_ram(0x0000, 45)
        cartridge.write_control(0x6000, 0x00)
        cartridge.write_control(0x6000, 0x01)

        cartridge.reset()
        assert cartridge.read_rom(0x4000) == 1
        assert cartridge.ram_select == 0
        assert cartridge.latched_rtc == [0] * 5
        assert cartridge.rtc[1] == 45


class TestMbc5:

    def test_nine_bit_rom_bank(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x19, rom_code=0x08, mark_banks=True))
        cartridge.write_control(0x2000, 0x05)
        cartridge.write_control(0x3000, 0x01)
        assert cartridge.read_rom(0x4000) == 0x05
        assert cartridge.read_rom(0x4001) == 0x01 # バンク0x105

    def test_bank_zero_selectable(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x19, rom_code=0x01, mark_banks=True))
        cartridge.write_control(0x2000, 0x00)
        assert cartridge.read_rom(0x4000) == 0

    def test_ram_banks(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x1B, ram_code=0x04))
        cartridge.write_control(0x0000, 0x0A)
        cartridge.write_control(0x4000, 0x0F)
        cartridge.write_ram(0x0001, 0x33)
        assert cartridge.ram_bytes()[15 * 0x2000 + 1] == 0x33
        cartridge.write_control(0x4000, 0x00)
        assert cartridge.read_ram(0x0001) == 0x00

    def test_reset(self, make_rom):
        cartridge = load_cartridge(make_rom(mbc_type=0x1B, rom_code=0x08, ram_code=0x04, mark_banks=True))
        cartridge.write_control(0x0000, 0x0A)
        cartridge.write_control(0x2000, 0x05)
        cartridge.write_control(0x3000, 0x01)
        cartridge.write_control(0x4000, 0x03)
        cartridge.write_ram(0x0000, 0x77)

        cartridge.reset()
        assert cartridge.read_rom(0x4000) == 1
        assert cartridge.read_rom(0x4001) == 0
        assert cartridge.ram_bank == 0
        assert cartridge.ram_bytes()[3 * 0x2000] == 0x77
