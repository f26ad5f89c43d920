# tests/system/test_machine.py
"""
retro_gb_core.system.machineモジュールの統合テスト。
CPU、割り込み、周辺機器、メモリマップを組み合わせたドライブループの動作を検証します。
"""
import pytest

from retro_gb_core.core.errors import SaveStateError
from retro_gb_core.core.savestate import pack_sections, unpack_sections
from retro_gb_core.arch.lr35902.interrupts import InterruptSource
from retro_gb_core.cartridge.loader import load_cartridge
from retro_gb_core.peripherals.base import Peripheral
from retro_gb_core.system.machine import Machine


class CountingPeripheral(Peripheral):
    """受け取ったサイクル数を記録するだけの周辺機器。"""
    def __init__(self):
        super().__init__()
        self.ticks = []

    def reset(self) -> None:
        self.ticks = []

    def tick(self, cycles: int) -> None:
        self.ticks.append(cycles)

    def read(self, address: int) -> int:
        return 0x00

    def write(self, address: int, data: int) -> None:
        pass

    def dump_state(self) -> bytes:
        return b""

    def load_state(self, data: bytes) -> None:
        pass


def _machine_with_vectors(make_rom, vectors):
    """割り込みベクタ領域に任意のコードを置いたROMでMachineを起動します。"""
    rom = bytearray(make_rom())
    for address, code in vectors.items():
        rom[address:address + len(code)] = code
    machine = Machine()
    machine.power_on(load_cartridge(bytes(rom)))
    return machine

# @intent:test_suite ドライブループと割り込みのシナリオを検証します。

class TestMachineScenarios:

    # @intent:test_case_halt NOP / LD A,$42 / HALT の実行で、A=0x42・HALT状態・16サイクルとなることを検証します。
    def test_nop_load_halt(self, make_machine):
        machine = make_machine(entry=bytes([0x00, 0x3E, 0x42, 0x76]))
        machine.run(max_steps=3)
        assert machine.state.a == 0x42
        assert machine.state.halted
        assert machine.state.pc == 0x0104
        assert machine.cycle_count == 16

        snapshot = machine.step()
        assert snapshot.operation.mnemonic == "HALT (suspended)"
        assert snapshot.cycles == 4
        assert machine.state.pc == 0x0104

    # @intent:test_case_joypad ボタン押下でHALTから復帰し、JOYPAD割り込みが24サイクルでディスパッチされます。
    def test_joypad_wakes_halt_and_dispatches(self, make_machine):
        machine = make_machine(bytes([0xFB, 0x00, 0x76])) # EI / NOP / HALT
        machine.bus.write(0xFFFF, InterruptSource.JOYPAD.mask)
        machine.bus.write(0xFF00, 0x10) # ボタンを選択
        machine.run(max_steps=4)
        assert machine.state.halted
        assert machine.state.ime

        assert machine.step().operation.mnemonic == "HALT (suspended)"
        machine.press("start")
        snapshot = machine.step()
        assert snapshot.interrupt == InterruptSource.JOYPAD
        assert snapshot.cycles == 24
        assert machine.state.pc == 0x0060
        assert not machine.state.halted
        assert not machine.state.ime
        assert machine.bus.read_word(machine.state.sp) == 0x0153

    # @intent:test_case_priority VBLANKとTIMERが同時に保留中の場合、VBLANKが先に処理されます。
    def test_vblank_before_timer(self, make_rom):
        machine = _machine_with_vectors(make_rom, {0x0040: bytes([0xD9])}) # RETI
        machine.bus.write(0xFFFF, InterruptSource.VBLANK.mask | InterruptSource.TIMER.mask)
        machine.request_interrupt(InterruptSource.TIMER)
        machine.state.ime = True

        first = machine.step()
        assert first.interrupt == InterruptSource.VBLANK
        assert machine.state.pc == 0x0040
        assert machine.bus.read(0xFF0F) == 0xE4

        reti = machine.step()
        assert reti.operation.mnemonic == "RETI"
        assert machine.state.pc == 0x0100
        assert machine.state.ime

        second = machine.step()
        assert second.interrupt == InterruptSource.TIMER
        assert machine.state.pc == 0x0050
        assert machine.interrupts.protocol_errors == []

    def test_timer_interrupt_through_bus(self, make_machine):
        machine = make_machine()
        machine.bus.write(0xFF06, 0x80)
        machine.bus.write(0xFF05, 0xFF)
        machine.bus.write(0xFF07, 0x05)
        machine.step() # JP: 16サイクル
        assert machine.bus.read(0xFF0F) & InterruptSource.TIMER.mask
        assert machine.bus.read(0xFF05) == 0x80

    def test_serial_output(self, make_machine):
        machine = make_machine()
        machine.bus.write(0xFF01, ord("H"))
        machine.bus.write(0xFF02, 0x81)
        machine.run(max_cycles=4096)
        assert machine.serial.output == b"H"
        assert machine.interrupts.requested & InterruptSource.SERIAL.mask

    # @intent:test_case_stop STOPはディバイダをクリアし、ジョイパッド要求まで周辺機器のクロックを止めます。
    def test_stop_pauses_peripherals(self, make_machine):
        machine = make_machine(bytes([0x10, 0x00]))
        machine.step()
        assert machine.timer.counter != 0

        machine.step()
        assert machine.state.stopped
        assert machine.state.pc == 0x0152
        assert machine.bus.read(0xFF04) == 0x00

        for _ in range(3):
            assert machine.step().operation.mnemonic == "STOP (suspended)"
        assert machine.timer.counter == 0

        machine.bus.write(0xFF00, 0x10)
        machine.press("a")
        snapshot = machine.step()
        assert not machine.state.stopped
        assert snapshot.operation.mnemonic == "NOP"
        assert machine.timer.counter == 4

    def test_attach_peripheral(self, make_machine):
        machine = make_machine()
        peripheral = CountingPeripheral()
        machine.attach_peripheral(peripheral)
        machine.run(max_steps=2)
        assert peripheral.ticks == [16, 4]

        peripheral._raise_interrupt(InterruptSource.LCD_STAT)
        assert machine.interrupts.requested & InterruptSource.LCD_STAT.mask

    def test_fault_does_not_tick_peripherals(self, make_machine):
        machine = make_machine(bytes([0xD3]))
        peripheral = CountingPeripheral()
        machine.attach_peripheral(peripheral)
        snapshot = machine.run(max_steps=10)
        assert snapshot.is_fault
        assert peripheral.ticks == [16]
        assert machine.step() is snapshot


# @intent:test_suite DMGのメモリマップを検証します。

class TestMemoryMap:

    def test_echo_ram(self, make_machine):
        machine = make_machine()
        machine.bus.write(0xE123, 0x5A)
        assert machine.bus.read(0xC123) == 0x5A
        machine.bus.write(0xDDFF, 0xA5)
        assert machine.bus.read(0xFDFF) == 0xA5

    # @intent:test_case_totality strictモードでも全てのアドレスがいずれかの領域に解決されます。
    def test_every_address_is_mapped(self, make_machine):
        machine = make_machine(strict_addressing=True)
        for address in range(0x10000):
            machine.bus.peek(address)

    def test_open_bus_regions(self, make_machine):
        machine = make_machine(strict_addressing=True)
        assert machine.bus.read(0xFEA0) == 0xFF
        assert machine.bus.read(0xFF10) == 0xFF # サウンド（未実装）
        machine.bus.write(0xFEFF, 0x12)
        assert machine.bus.read(0xFEFF) == 0xFF

    def test_registers_are_routed(self, make_machine):
        machine = make_machine()
        machine.bus.write(0xFF80, 0x11)
        assert machine.hram.read(0x00) == 0x11
        machine.bus.write(0x8000, 0x22)
        assert machine.video.vram.read(0x0000) == 0x22
        assert machine.bus.read(0xFF40) == 0x91
        assert machine.bus.read(0xFFFF) == 0x00
        assert machine.bus.read(0xFF0F) == 0xE1

    def test_cartridge_ram_window(self, make_machine):
        machine = make_machine(mbc_type=0x03, ram_code=0x02)
        machine.bus.write(0xA000, 0x33)
        assert machine.bus.read(0xA000) == 0xFF
        machine.bus.write(0x0000, 0x0A)
        machine.bus.write(0xA000, 0x33)
        assert machine.bus.read(0xA000) == 0x33

    def test_no_cartridge_reads_open_bus(self):
        machine = Machine()
        machine.reset()
        assert machine.cartridge is None
        assert machine.bus.read(0x0100) == 0xFF
        assert machine.bus.read(0xA000) == 0xFF


# @intent:test_suite ライフサイクルとセーブステートを検証します。

class TestMachineLifecycle:

    def test_power_on_state(self, make_machine):
        machine = make_machine()
        state = machine.state
        assert (state.af, state.bc, state.de, state.hl) == (0x01B0, 0x0013, 0x00D8, 0x014D)
        assert (state.sp, state.pc) == (0xFFFE, 0x0100)
        assert machine.cycle_count == 0
        assert machine.bus.read(0xFF04) == 0xAB

    def test_reset_clears_ram(self, make_machine):
        machine = make_machine()
        machine.bus.write(0xC000, 0x42)
        machine.run(max_steps=3)
        machine.reset()
        assert machine.bus.read(0xC000) == 0x00
        assert machine.state.pc == 0x0100
        assert machine.cycle_count == 0

    # @intent:test_case_reset_banks resetでカートリッジのバンク選択は初期値に戻り、外部RAMの内容は残ります。
    def test_reset_restores_cartridge_banks(self, make_machine):
        machine = make_machine(mbc_type=0x03, rom_code=0x02, ram_code=0x02, mark_banks=True)
        machine.bus.write(0x2000, 5)
        assert machine.bus.read(0x4000) == 5
        machine.bus.write(0x0000, 0x0A)
        machine.bus.write(0xA000, 0x66)

        machine.reset()
        assert machine.bus.read(0x4000) == 1
        assert machine.bus.read(0xA000) == 0xFF
        machine.bus.write(0x0000, 0x0A)
        assert machine.bus.read(0xA000) == 0x66

    def test_power_on_reused_cartridge(self, make_machine):
        machine = make_machine(mbc_type=0x01, rom_code=0x02, mark_banks=True)
        cartridge = machine.cartridge
        machine.bus.write(0x2000, 7)

        other = Machine()
        other.power_on(cartridge)
        assert other.bus.read(0x4000) == 1

    def test_run_requires_a_limit(self, make_machine):
        with pytest.raises(ValueError):
            make_machine().run()

    def test_run_limits(self, make_machine):
        machine = make_machine()
        machine.run(max_steps=2)
        assert machine.cycle_count == 20

        machine = make_machine()
        snapshot = machine.run(max_cycles=20)
        assert machine.cycle_count == 20
        assert snapshot.operation.mnemonic == "NOP"

    # @intent:test_case_round_trip 保存した状態から再実行すると、同じ結果が得られます。
    def test_save_state_round_trip(self, make_machine):
        # INC A / LD ($C000),A / JR -6
        machine = make_machine(bytes([0x3C, 0xEA, 0x00, 0xC0, 0x18, 0xFA]), mbc_type=0x03, ram_code=0x02)
        machine.bus.write(0xFF80, 0x11)
        machine.bus.write(0x8000, 0x22)
        machine.bus.write(0xFE00, 0x33)
        machine.bus.write(0xFFFF, InterruptSource.TIMER.mask | InterruptSource.SERIAL.mask)
        machine.bus.write(0xFF0F, InterruptSource.LCD_STAT.mask)
        machine.bus.write(0x0000, 0x0A)
        machine.bus.write(0xA000, 0x44)
        machine.run(max_steps=4)

        blob = machine.save_state()
        saved_cpu = machine.state.to_bytes()
        saved_cycles = machine.cycle_count
        saved_hram = machine.hram.dump()
        saved_video = machine.video.dump_state()
        saved_interrupts = machine.interrupts.dump_state()
        saved_cart_ram = machine.cartridge.ram_bytes()

        expected = [machine.step().state.to_bytes() for _ in range(10)]
        expected_ram = machine.wram.dump()

        # 保存後に各領域を書き換えておく
        machine.bus.write(0xFF80, 0x00)
        machine.bus.write(0x8000, 0x00)
        machine.bus.write(0xFE00, 0x00)
        machine.bus.write(0xFFFF, 0x00)
        machine.bus.write(0xFF0F, 0x00)
        machine.bus.write(0xA000, 0x00)

        machine.load_state(blob)
        assert machine.state.to_bytes() == saved_cpu
        assert machine.cycle_count == saved_cycles
        assert machine.hram.dump() == saved_hram
        assert machine.video.dump_state() == saved_video
        assert machine.interrupts.dump_state() == saved_interrupts
        assert machine.bus.read(0xFFFF) == InterruptSource.TIMER.mask | InterruptSource.SERIAL.mask
        assert machine.bus.read(0xFF0F) == 0xE0 | InterruptSource.LCD_STAT.mask
        assert machine.cartridge.ram_bytes() == saved_cart_ram
        assert machine.bus.read(0xA000) == 0x44

        assert [machine.step().state.to_bytes() for _ in range(10)] == expected
        assert machine.wram.dump() == expected_ram

    # @intent:test_case_atomic_load 途中のセクションが壊れたデータを読み込んでも、マシンの状態は変更されません。
    def test_failed_load_leaves_machine_unchanged(self, make_machine):
        machine = make_machine(mbc_type=0x03, ram_code=0x02)
        machine.bus.write(0xC000, 0x11)
        sections = unpack_sections(machine.save_state())
        sections["serial"] = b"\x00"
        broken = pack_sections(sections)

        machine.step()
        machine.bus.write(0xC000, 0x99)
        machine.bus.write(0xFF80, 0x55)
        before_cpu = machine.state.to_bytes()
        before_cycles = machine.cycle_count

        with pytest.raises(SaveStateError, match="Corrupted"):
            machine.load_state(broken)
        assert machine.bus.read(0xC000) == 0x99
        assert machine.bus.read(0xFF80) == 0x55
        assert machine.state.to_bytes() == before_cpu
        assert machine.cycle_count == before_cycles
        assert machine.cpu.fault is None

    def test_load_state_clears_fault(self, make_machine):
        machine = make_machine(bytes([0x00, 0xD3]))
        machine.step()
        blob = machine.save_state()
        machine.run(max_steps=5)
        assert machine.cpu.fault is not None

        machine.load_state(blob)
        assert machine.cpu.fault is None
        assert machine.state.pc == 0x0150

    def test_load_state_from_different_cartridge(self, make_machine):
        blob = make_machine(title=b"FIRST").save_state()
        other = make_machine(title=b"SECOND")
        with pytest.raises(SaveStateError, match="different cartridge"):
            other.load_state(blob)

    def test_load_corrupted_state(self, make_machine):
        machine = make_machine()
        blob = machine.save_state()
        with pytest.raises(SaveStateError):
            machine.load_state(blob[:-3])
        with pytest.raises(SaveStateError, match="missing section"):
            machine.load_state(pack_sections({"cartridge_id": machine._cartridge_id()}))
