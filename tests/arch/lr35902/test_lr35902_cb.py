# tests/arch/lr35902/test_lr35902_cb.py
"""
0xCBプレフィックス命令（ローテート、シフト、BIT/RES/SET）の単体テスト。
"""
import pytest

from retro_gb_core.transport.bus import Bus, RAM
from retro_gb_core.arch.lr35902.state import Lr35902CpuState
from retro_gb_core.arch.lr35902.instructions import decode_opcode, execute_instruction

CODE = 0xC000

# @intent:test_suite 拡張命令のデコード結果と実行結果を検証します。

class TestCbInstructions:

    @pytest.fixture
    def setup_cb(self):
        bus = Bus()
        bus.register_device(0x0000, 0xFFFF, RAM(0x10000))
        state = Lr35902CpuState(pc=CODE, sp=0xD000)
        return state, bus

    def _run(self, state, bus, cb_opcode):
        bus.write(CODE, 0xCB)
        bus.write(CODE + 1, cb_opcode)
        state.pc = CODE
        operation = decode_opcode(0xCB, bus, CODE)
        state.pc += operation.length
        cycles = execute_instruction(operation, state, bus)
        return operation, cycles

    # @intent:test_case_decode デコード結果のニーモニック、長さ、サイクル数を検証します。
    @pytest.mark.parametrize("cb_opcode, mnemonic, cycles", [
        (0x00, "RLC B", 8),
        (0x06, "RLC (HL)", 16),
        (0x37, "SWAP A", 8),
        (0x7C, "BIT 7,H", 8),
        (0x46, "BIT 0,(HL)", 12),
        (0x87, "RES 0,A", 8),
        (0xFE, "SET 7,(HL)", 16),
    ])
    def test_decode(self, setup_cb, cb_opcode, mnemonic, cycles):
        state, bus = setup_cb
        bus.write(CODE + 1, cb_opcode)
        operation = decode_opcode(0xCB, bus, CODE)
        assert operation.opcode_hex == f"CB{cb_opcode:02X}"
        assert operation.mnemonic == mnemonic
        assert operation.length == 2
        assert operation.cycle_count == cycles

    # @intent:test_case_bit BITはZを設定し、Hをセット、Nをクリア、Cは保持します。
    def test_bit(self, setup_cb):
        state, bus = setup_cb
        state.h = 0x80
        state.flag_c = True
        state.flag_n = True
        self._run(state, bus, 0x7C) # BIT 7,H
        assert not state.flag_z
        assert state.flag_h and not state.flag_n and state.flag_c

        state.h = 0x7F
        self._run(state, bus, 0x7C)
        assert state.flag_z

    # @intent:test_case_res_set RES/SETは(HL)のメモリにも作用し、フラグを変更しません。
    def test_res_set_memory(self, setup_cb):
        state, bus = setup_cb
        state.hl = 0xC800
        bus.write(0xC800, 0x00)
        state.f = 0x50
        self._run(state, bus, 0xFE) # SET 7,(HL)
        assert bus.read(0xC800) == 0x80
        self._run(state, bus, 0x86) # RES 0,(HL)
        assert bus.read(0xC800) == 0x80
        self._run(state, bus, 0xBE) # RES 7,(HL)
        assert bus.read(0xC800) == 0x00
        assert state.f == 0x50

    # @intent:test_case_rotate CB版のローテートは結果が0ならZをセットします（RLCAと異なる）。
    def test_rotate_sets_zero(self, setup_cb):
        state, bus = setup_cb
        state.b = 0x80
        _, cycles = self._run(state, bus, 0x10) # RL B (C=0)
        assert state.b == 0x00
        assert state.flag_z and state.flag_c
        assert cycles == 8

    def test_swap_clears_carry(self, setup_cb):
        state, bus = setup_cb
        state.a = 0xF0
        state.flag_c = True
        self._run(state, bus, 0x37) # SWAP A
        assert state.a == 0x0F
        assert not state.flag_c and not state.flag_z

    def test_sra_keeps_sign(self, setup_cb):
        state, bus = setup_cb
        state.hl = 0xC800
        bus.write(0xC800, 0x8A)
        _, cycles = self._run(state, bus, 0x2E) # SRA (HL)
        assert bus.read(0xC800) == 0xC5
        assert not state.flag_c
        assert cycles == 16
