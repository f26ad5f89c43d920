# retro_gb_core/arch/lr35902/cpu.py
"""
LR35902 CPUエミュレーションの中心モジュール。

このモジュールはSharp LR35902 CPUの具体的な実装を提供し、
AbstractCpuインターフェースを実装します。
"""
import copy
import logging
from typing import Dict, List, Optional, Tuple

from retro_gb_core.core.cpu import AbstractCpu
from retro_gb_core.core.snapshot import Operation, Metadata, Snapshot
from retro_gb_core.transport.bus import Bus
from retro_gb_core.arch.lr35902.state import Lr35902CpuState
from retro_gb_core.arch.lr35902.interrupts import (
    InterruptController, DISPATCH_CYCLES, HALT_WAKE_CYCLES
)
from retro_gb_core.arch.lr35902.instructions import decode_opcode, execute_instruction
from retro_gb_core.arch.lr35902 import disassembler

logger = logging.getLogger(__name__)

# 停止中（HALT/STOP）の1ステップあたりのサイクル数
IDLE_CYCLES = 4

# @intent:responsibility LR35902 CPUの具体的なエミュレーションロジックを提供します。
class Lr35902Cpu(AbstractCpu):
    """
    Sharp LR35902 CPUをエミュレートするクラス。
    AbstractCpuを継承し、割り込み処理、HALT/STOP、EIの遅延といったLR35902固有の動作を実装します。

    HALTの扱い:
        - IME=1: 保留中の割り込みがあればHALTを解除してディスパッチします（24サイクル）。
        - IME=0 かつ 保留中の割り込みなし: HALTし、割り込み要求が立った時点でディスパッチせずに再開します。
        - IME=0 かつ 保留中の割り込みあり: HALTせず、直後の1バイトが二度読まれます（halt bug）。
    """
    # @intent:pre-condition `bus`は有効なBusオブジェクトである必要があります。
    def __init__(self, bus: Bus, interrupts: Optional[InterruptController] = None):
        super().__init__(bus)
        self._interrupts = interrupts if interrupts is not None else InterruptController()

    @property
    def interrupts(self) -> InterruptController:
        return self._interrupts

    # @intent:responsibility ブートROM実行直後の状態を初期状態とします。
    def _create_initial_state(self) -> Lr35902CpuState:
        return Lr35902CpuState.post_boot()

    # @intent:responsibility 現在のPCからオペコードをフェッチします。PCの更新は_update_pcで行います。
    def _fetch(self) -> int:
        return self._bus.read(self._state.pc)

    # @intent:responsibility フェッチしたオペコードをデコードします。
    # @intent:rationale halt bug発生直後はPCが進まないため、オペランドをオペコードと同じアドレスから読みます。
    def _decode(self, opcode: int) -> Operation:
        base = self._state.pc
        if self._state.halt_bug:
            base = (base - 1) & 0xFFFF
        return decode_opcode(opcode, self._bus, base)

    def _update_pc(self, operation: Operation) -> None:
        length = operation.length
        if self._state.halt_bug:
            self._state.halt_bug = False
            length -= 1
        self._state.pc = (self._state.pc + length) & 0xFFFF

    # @intent:responsibility 命令を実行し、EIの遅延・HALTの分岐・RETIの通知を処理します。
    def _execute(self, operation: Operation) -> int:
        state = self._state
        pending_enable = state.ime_scheduled

        cycles = execute_instruction(operation, state, self._bus)

        # EIの効果は次の命令の完了後に現れる（DIで取り消された場合を除く）
        if pending_enable and state.ime_scheduled:
            state.ime = True
            state.ime_scheduled = False

        if operation.opcode_hex == "76" and not state.ime and self._interrupts.pending():
            state.halted = False
            state.halt_bug = True
            logger.debug("HALT with IME=0 and pending interrupt at %#06x: halt bug", (state.pc - 1) & 0xFFFF)
        elif operation.opcode_hex == "D9":
            self._interrupts.notify_return(state)
        return cycles

    # @intent:responsibility 命令境界で割り込みを判定し、必要ならディスパッチします。
    def _service_interrupts(self, current_pc: int) -> Optional[Snapshot]:
        state = self._state
        was_halted = state.halted
        self._interrupts.wake(state)
        source = self._interrupts.dispatch(state, self._bus)
        if source is None:
            return None

        cycles = DISPATCH_CYCLES + (HALT_WAKE_CYCLES if was_halted else 0)
        operation = Operation(
            opcode_hex="--",
            mnemonic=f"INT {source.name}",
            operands=[f"${source.vector:04X}"],
            cycle_count=cycles,
            length=0,
        )
        return self._create_snapshot(current_pc, operation, cycles, interrupt=int(source))

    # @intent:responsibility HALT/STOP中はメモリを読まずに4サイクルだけ進めます。
    def _handle_halt(self, current_pc: int) -> Optional[Snapshot]:
        state = self._state
        if not (state.halted or state.stopped):
            return None
        mnemonic = "STOP (suspended)" if state.stopped else "HALT (suspended)"
        operation = Operation(opcode_hex="--", mnemonic=mnemonic, cycle_count=IDLE_CYCLES, length=0)
        self._cycle_count += IDLE_CYCLES
        return Snapshot(
            state=copy.copy(state),
            operation=operation,
            metadata=Metadata(
                cycle_count=self._cycle_count,
                symbol_info=f"PC: {current_pc:#06x} -> {mnemonic}",
                step_cycles=IDLE_CYCLES,
            ),
            bus_activity=self._bus.get_and_clear_activity_log(),
        )

    def get_register_map(self) -> Dict[str, int]:
        s = self._state
        return {
            "A": s.a, "F": s.f, "B": s.b, "C": s.c, "D": s.d, "E": s.e, "H": s.h, "L": s.l,
            "AF": s.af, "BC": s.bc, "DE": s.de, "HL": s.hl,
            "SP": s.sp, "PC": s.pc,
            "IME": int(s.ime),
            "IE": self._interrupts.enabled, "IF": self._interrupts.requested,
        }

    def get_flag_state(self) -> Dict[str, bool]:
        s = self._state
        return {
            "Z": s.flag_z,
            "N": s.flag_n,
            "H": s.flag_h,
            "C": s.flag_c,
        }

    def disassemble(self, start_addr: int, length: int) -> List[Tuple[int, str, str]]:
        return disassembler.disassemble(self._bus, start_addr, length)
