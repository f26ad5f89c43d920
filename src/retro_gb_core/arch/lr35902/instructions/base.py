"""
LR35902命令セット実装のための共通ヘルパー関数と定数。
"""
from retro_gb_core.arch.lr35902.state import Lr35902CpuState
from retro_gb_core.transport.bus import Bus
from retro_gb_core.core.snapshot import Operation

# Helper functions for register mapping
REGISTER_CODES = {
    0b000: "B", 0b001: "C", 0b010: "D", 0b011: "E",
    0b100: "H", 0b101: "L", 0b110: "(HL)", 0b111: "A"
}

# 16ビットレジスタペア (LD rr,d16 / INC rr / ADD HL,rr)
RP_CODES = {0b00: "BC", 0b01: "DE", 0b10: "HL", 0b11: "SP"}
# PUSH/POPのレジスタペア
RP2_CODES = {0b00: "BC", 0b01: "DE", 0b10: "HL", 0b11: "AF"}

CONDITION_CODES = {0b00: "NZ", 0b01: "Z", 0b10: "NC", 0b11: "C"}

# @intent:utility_function 指定されたコードに対応するレジスタ名を返します。
def get_register_name(code: int) -> str:
    return REGISTER_CODES.get(code, "UNKNOWN_REG")

# @intent:utility_function レジスタ名（または(HL)）に基づいて現在の値を取得します。
def get_register_value(state: Lr35902CpuState, bus: Bus, reg_name: str) -> int:
    if reg_name == "(HL)":
        return bus.read(state.hl)
    return getattr(state, reg_name.lower())

# @intent:utility_function レジスタ名（または(HL)）に値を設定します。
def set_register_value(state: Lr35902CpuState, bus: Bus, reg_name: str, value: int) -> None:
    if reg_name == "(HL)":
        bus.write(state.hl, value & 0xFF)
    else:
        setattr(state, reg_name.lower(), value & 0xFF)

# @intent:utility_function 条件コード（NZ/Z/NC/C）をフラグに照らして評価します。
def check_condition(state: Lr35902CpuState, cc_code: int) -> bool:
    if cc_code == 0b00:
        return not state.flag_z
    if cc_code == 0b01:
        return state.flag_z
    if cc_code == 0b10:
        return not state.flag_c
    return state.flag_c

# @intent:utility_function 16ビット値をスタックにプッシュします（上位バイトをSP-1、下位バイトをSP-2へ）。
def push_word(state: Lr35902CpuState, bus: Bus, value: int) -> None:
    state.sp = (state.sp - 1) & 0xFFFF
    bus.write(state.sp, (value >> 8) & 0xFF)
    state.sp = (state.sp - 1) & 0xFFFF
    bus.write(state.sp, value & 0xFF)

# @intent:utility_function スタックから16ビット値をポップします。
def pop_word(state: Lr35902CpuState, bus: Bus) -> int:
    low = bus.read(state.sp)
    state.sp = (state.sp + 1) & 0xFFFF
    high = bus.read(state.sp)
    state.sp = (state.sp + 1) & 0xFFFF
    return (high << 8) | low

# @intent:utility_function Operationに格納されたリトルエンディアンの16ビットオペランドを取り出します。
def operand_word(operation: Operation) -> int:
    low, high = operation.operand_bytes
    return (high << 8) | low

# @intent:utility_function 命令の実オペコード値を取得します（CB命令は下位バイト）。
def opcode_of(operation: Operation) -> int:
    return int(operation.opcode_hex, 16) & 0xFF

# @intent:utility_function 1バイトのオペランドを伴う命令のOperationを生成します。
def decode_imm8(opcode: int, bus: Bus, pc: int, mnemonic: str, cycles: int, flag_rule: str = "----",
                signed: bool = False, branch_cycles=None) -> Operation:
    n = bus.read((pc + 1) & 0xFFFF)
    if signed:
        offset = n - 0x100 if n & 0x80 else n
        operand = f"{'-' if offset < 0 else '+'}${abs(offset):02X}"
    else:
        operand = f"${n:02X}"
    return Operation(
        opcode_hex=f"{opcode:02X}",
        mnemonic=mnemonic,
        operands=[operand],
        operand_bytes=[n],
        cycle_count=cycles,
        length=2,
        branch_cycle_count=branch_cycles,
        flag_rule=flag_rule,
    )

# @intent:utility_function 2バイトのオペランドを伴う命令のOperationを生成します。
def decode_imm16(opcode: int, bus: Bus, pc: int, mnemonic: str, cycles: int,
                 branch_cycles=None) -> Operation:
    low = bus.read((pc + 1) & 0xFFFF)
    high = bus.read((pc + 2) & 0xFFFF)
    return Operation(
        opcode_hex=f"{opcode:02X}",
        mnemonic=mnemonic,
        operands=[f"${(high << 8) | low:04X}"],
        operand_bytes=[low, high],
        cycle_count=cycles,
        length=3,
        branch_cycle_count=branch_cycles,
    )
