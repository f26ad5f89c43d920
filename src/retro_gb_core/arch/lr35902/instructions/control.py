"""
LR35902 制御命令（分岐、コール、リターン、システム制御）の実装。

条件付き命令の実行関数は、分岐が成立した場合に True を返します。
呼び出し側はこれを見て Operation.branch_cycle_count を報告します。
"""
from typing import Optional

from retro_gb_core.arch.lr35902.state import Lr35902CpuState
from retro_gb_core.transport.bus import Bus
from retro_gb_core.core.snapshot import Operation
from retro_gb_core.arch.lr35902.alu import to_signed8
from .base import (
    CONDITION_CODES, check_condition, push_word, pop_word,
    operand_word, opcode_of, decode_imm16
)

# --- Decoding Functions ---

def decode_nop(opcode: int, bus: Bus, pc: int) -> Operation:
    """NOP命令をデコードします。"""
    return Operation(opcode_hex="00", mnemonic="NOP", cycle_count=4, length=1)

# @intent:responsibility オペコード0x76 (HALT)をデコードします。
def decode_halt(opcode: int, bus: Bus, pc: int) -> Operation:
    return Operation(opcode_hex="76", mnemonic="HALT", cycle_count=4, length=1)

# @intent:responsibility オペコード0x10 (STOP)をデコードします。2バイト目は読み捨てられます。
def decode_stop(opcode: int, bus: Bus, pc: int) -> Operation:
    padding = bus.read((pc + 1) & 0xFFFF)
    return Operation(opcode_hex="10", mnemonic="STOP", operand_bytes=[padding], cycle_count=4, length=2)

def decode_di(opcode: int, bus: Bus, pc: int) -> Operation:
    return Operation(opcode_hex="F3", mnemonic="DI", cycle_count=4, length=1)

def decode_ei(opcode: int, bus: Bus, pc: int) -> Operation:
    return Operation(opcode_hex="FB", mnemonic="EI", cycle_count=4, length=1)

# @intent:responsibility JR r8 / JR cc,r8 をデコードします。オペランドには飛び先アドレスを表示します。
def decode_jr(opcode: int, bus: Bus, pc: int) -> Operation:
    offset = bus.read((pc + 1) & 0xFFFF)
    target = (pc + 2 + to_signed8(offset)) & 0xFFFF
    if opcode == 0x18:
        mnemonic, cycles, branch_cycles = "JR r8", 12, None
    else:
        cc = CONDITION_CODES[(opcode >> 3) & 0b11]
        mnemonic, cycles, branch_cycles = f"JR {cc},r8", 8, 12
    return Operation(
        opcode_hex=f"{opcode:02X}",
        mnemonic=mnemonic,
        operands=[f"${target:04X}"],
        operand_bytes=[offset],
        cycle_count=cycles,
        length=2,
        branch_cycle_count=branch_cycles
    )

# @intent:responsibility JP a16 / JP cc,a16 をデコードします。
def decode_jp(opcode: int, bus: Bus, pc: int) -> Operation:
    if opcode == 0xC3:
        return decode_imm16(opcode, bus, pc, "JP a16", 16)
    cc = CONDITION_CODES[(opcode >> 3) & 0b11]
    return decode_imm16(opcode, bus, pc, f"JP {cc},a16", 12, branch_cycles=16)

def decode_jp_hl(opcode: int, bus: Bus, pc: int) -> Operation:
    return Operation(opcode_hex="E9", mnemonic="JP (HL)", cycle_count=4, length=1)

# @intent:responsibility CALL a16 / CALL cc,a16 をデコードします。
def decode_call(opcode: int, bus: Bus, pc: int) -> Operation:
    if opcode == 0xCD:
        return decode_imm16(opcode, bus, pc, "CALL a16", 24)
    cc = CONDITION_CODES[(opcode >> 3) & 0b11]
    return decode_imm16(opcode, bus, pc, f"CALL {cc},a16", 12, branch_cycles=24)

# @intent:responsibility RET / RET cc / RETI をデコードします。
def decode_ret(opcode: int, bus: Bus, pc: int) -> Operation:
    if opcode == 0xC9:
        return Operation(opcode_hex="C9", mnemonic="RET", cycle_count=16, length=1)
    if opcode == 0xD9:
        return Operation(opcode_hex="D9", mnemonic="RETI", cycle_count=16, length=1)
    cc = CONDITION_CODES[(opcode >> 3) & 0b11]
    return Operation(
        opcode_hex=f"{opcode:02X}",
        mnemonic=f"RET {cc}",
        cycle_count=8,
        length=1,
        branch_cycle_count=20
    )

# @intent:responsibility RST n をデコードします。飛び先はオペコードのビット5-3 × 8 です。
def decode_rst(opcode: int, bus: Bus, pc: int) -> Operation:
    return Operation(
        opcode_hex=f"{opcode:02X}",
        mnemonic=f"RST {opcode & 0x38:02X}H",
        cycle_count=16,
        length=1
    )

# --- Execution Functions ---

def execute_nop(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    # Intentional: NOP (No Operation)
    pass

# @intent:responsibility CPUをHALT状態にします。割り込み要求が立つまで命令の取り込みを停止します。
def execute_halt(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    state.halted = True

# @intent:responsibility CPUをSTOP状態にします。ジョイパッド割り込み要求で復帰します。
def execute_stop(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    state.stopped = True

# @intent:responsibility 割り込みを禁止します。保留中のEIも取り消されます。
def execute_di(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    state.ime = False
    state.ime_scheduled = False

# @intent:responsibility 割り込み許可を予約します。IMEは次の命令の完了後に有効になります。
def execute_ei(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    state.ime_scheduled = True

def execute_jr(state: Lr35902CpuState, bus: Bus, operation: Operation) -> Optional[bool]:
    opcode = opcode_of(operation)
    if opcode != 0x18 and not check_condition(state, (opcode >> 3) & 0b11):
        return False
    # PCはstep内で命令長分進められている
    state.pc = (state.pc + to_signed8(operation.operand_bytes[0])) & 0xFFFF
    return True

def execute_jp(state: Lr35902CpuState, bus: Bus, operation: Operation) -> Optional[bool]:
    opcode = opcode_of(operation)
    if opcode != 0xC3 and not check_condition(state, (opcode >> 3) & 0b11):
        return False
    state.pc = operand_word(operation)
    return True

def execute_jp_hl(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    state.pc = state.hl

def execute_call(state: Lr35902CpuState, bus: Bus, operation: Operation) -> Optional[bool]:
    opcode = opcode_of(operation)
    if opcode != 0xCD and not check_condition(state, (opcode >> 3) & 0b11):
        return False
    push_word(state, bus, state.pc)
    state.pc = operand_word(operation)
    return True

# @intent:responsibility RET系命令を実行します。RETIはIMEを即座に再有効化します。
def execute_ret(state: Lr35902CpuState, bus: Bus, operation: Operation) -> Optional[bool]:
    opcode = opcode_of(operation)
    if opcode in (0xC9, 0xD9):
        state.pc = pop_word(state, bus)
        if opcode == 0xD9:
            state.ime = True
            state.ime_scheduled = False
        return True
    if not check_condition(state, (opcode >> 3) & 0b11):
        return False
    state.pc = pop_word(state, bus)
    return True

def execute_rst(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    push_word(state, bus, state.pc)
    state.pc = opcode_of(operation) & 0x38
