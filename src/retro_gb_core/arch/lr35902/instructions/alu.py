"""
LR35902 算術論理演算 (ALU) 命令の実装。
"""
from retro_gb_core.arch.lr35902.state import Lr35902CpuState
from retro_gb_core.transport.bus import Bus
from retro_gb_core.core.snapshot import Operation
from retro_gb_core.arch.lr35902.alu import (
    update_flags_add8, update_flags_sub8, update_flags_logic8,
    update_flags_inc_dec8, update_flags_add16, update_flags_sp_offset,
    rotate_shift8, decimal_adjust, to_signed8
)
from .base import (
    RP_CODES, get_register_name, get_register_value, set_register_value,
    opcode_of, decode_imm8
)

# ALU演算種別 (オペコードのビット5-3)
ALU_OPS = ("ADD A,", "ADC A,", "SUB ", "SBC A,", "AND ", "XOR ", "OR ", "CP ")
ALU_FLAG_RULES = ("Z0HC", "Z0HC", "Z1HC", "Z1HC", "Z010", "Z000", "Z000", "Z1HC")

# アキュムレータ専用ローテート命令 (0x07, 0x0F, 0x17, 0x1F)
ACCUMULATOR_ROTATES = {0x07: "RLCA", 0x0F: "RRCA", 0x17: "RLA", 0x1F: "RRA"}

# フラグ操作命令
MISC_FLAG_OPS = {
    0x27: ("DAA", "Z-0C"),
    0x2F: ("CPL", "-11-"),
    0x37: ("SCF", "-001"),
    0x3F: ("CCF", "-00C"),
}

# --- Decoding Functions ---

# @intent:responsibility ADD/ADC/SUB/SBC/AND/XOR/OR/CP A,r 形式の命令をデコードします。
def decode_alu_r(opcode: int, bus: Bus, pc: int) -> Operation:
    op_type = (opcode >> 3) & 0b111
    src_reg_name = get_register_name(opcode & 0b111)
    return Operation(
        opcode_hex=f"{opcode:02X}",
        mnemonic=f"{ALU_OPS[op_type]}{src_reg_name}",
        cycle_count=4 if src_reg_name != "(HL)" else 8,
        length=1,
        flag_rule=ALU_FLAG_RULES[op_type]
    )

# @intent:responsibility 即値オペランドを取るALU命令（0xC6, 0xCE, ... 0xFE）をデコードします。
def decode_alu_d8(opcode: int, bus: Bus, pc: int) -> Operation:
    op_type = (opcode >> 3) & 0b111
    return decode_imm8(opcode, bus, pc, f"{ALU_OPS[op_type]}d8", 8, flag_rule=ALU_FLAG_RULES[op_type])

# @intent:responsibility INC r / DEC r 形式の命令をデコードします。
def decode_inc_dec8(opcode: int, bus: Bus, pc: int) -> Operation:
    """8ビットのINC/DEC命令をデコードします。Cフラグは変化しません。"""
    reg_name = get_register_name((opcode >> 3) & 0b111)
    is_inc = (opcode & 1) == 0
    return Operation(
        opcode_hex=f"{opcode:02X}",
        mnemonic=f"{'INC' if is_inc else 'DEC'} {reg_name}",
        cycle_count=4 if reg_name != "(HL)" else 12,
        length=1,
        flag_rule="Z0H-" if is_inc else "Z1H-"
    )

# @intent:responsibility INC rr / DEC rr 形式の命令をデコードします。フラグは変化しません。
def decode_inc_dec16(opcode: int, bus: Bus, pc: int) -> Operation:
    rr_name = RP_CODES[(opcode >> 4) & 0b11]
    is_inc = (opcode & 0x0F) == 0x03
    return Operation(
        opcode_hex=f"{opcode:02X}",
        mnemonic=f"{'INC' if is_inc else 'DEC'} {rr_name}",
        cycle_count=8,
        length=1
    )

# @intent:responsibility ADD HL,rr 形式の命令をデコードします。
def decode_add_hl_rr(opcode: int, bus: Bus, pc: int) -> Operation:
    rr_name = RP_CODES[(opcode >> 4) & 0b11]
    return Operation(
        opcode_hex=f"{opcode:02X}",
        mnemonic=f"ADD HL,{rr_name}",
        cycle_count=8,
        length=1,
        flag_rule="-0HC"
    )

def decode_add_sp_r8(opcode: int, bus: Bus, pc: int) -> Operation:
    return decode_imm8(opcode, bus, pc, "ADD SP,r8", 16, flag_rule="00HC", signed=True)

def decode_rotate_a(opcode: int, bus: Bus, pc: int) -> Operation:
    return Operation(
        opcode_hex=f"{opcode:02X}",
        mnemonic=ACCUMULATOR_ROTATES[opcode],
        cycle_count=4,
        length=1,
        flag_rule="000C"
    )

def decode_misc_flag(opcode: int, bus: Bus, pc: int) -> Operation:
    mnemonic, flag_rule = MISC_FLAG_OPS[opcode]
    return Operation(opcode_hex=f"{opcode:02X}", mnemonic=mnemonic, cycle_count=4, length=1, flag_rule=flag_rule)

# --- Execution Functions ---

# @intent:responsibility アキュムレータとオペランドの間で8ビットALU演算を実行します。
def _alu8(state: Lr35902CpuState, op_type: int, val: int) -> None:
    a = state.a
    if op_type == 0: # ADD
        result = a + val
        update_flags_add8(state, a, val, result)
        state.a = result & 0xFF
    elif op_type == 1: # ADC
        carry = 1 if state.flag_c else 0
        result = a + val + carry
        update_flags_add8(state, a, val, result, carry)
        state.a = result & 0xFF
    elif op_type == 2: # SUB
        result = a - val
        update_flags_sub8(state, a, val, result)
        state.a = result & 0xFF
    elif op_type == 3: # SBC
        borrow = 1 if state.flag_c else 0
        result = a - val - borrow
        update_flags_sub8(state, a, val, result, borrow)
        state.a = result & 0xFF
    elif op_type == 4: # AND
        state.a = a & val
        update_flags_logic8(state, state.a, h_flag=True)
    elif op_type == 5: # XOR
        state.a = a ^ val
        update_flags_logic8(state, state.a)
    elif op_type == 6: # OR
        state.a = a | val
        update_flags_logic8(state, state.a)
    else: # CP: 結果は破棄し、フラグのみ更新
        update_flags_sub8(state, a, val, a - val)

def execute_alu_r(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    opcode = opcode_of(operation)
    val = get_register_value(state, bus, get_register_name(opcode & 0b111))
    _alu8(state, (opcode >> 3) & 0b111, val)

def execute_alu_d8(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    _alu8(state, (opcode_of(operation) >> 3) & 0b111, operation.operand_bytes[0])

def execute_inc_dec8(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    opcode = opcode_of(operation)
    reg_name = get_register_name((opcode >> 3) & 0b111)
    val = get_register_value(state, bus, reg_name)
    is_inc = (opcode & 1) == 0
    result = (val + 1) if is_inc else (val - 1)
    update_flags_inc_dec8(state, val, result, is_inc)
    set_register_value(state, bus, reg_name, result & 0xFF)

def execute_inc_dec16(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    opcode = opcode_of(operation)
    rr_name = RP_CODES[(opcode >> 4) & 0b11].lower()
    delta = 1 if (opcode & 0x0F) == 0x03 else -1
    setattr(state, rr_name, (getattr(state, rr_name) + delta) & 0xFFFF)

def execute_add_hl_rr(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    rr_name = RP_CODES[(opcode_of(operation) >> 4) & 0b11].lower()
    val = getattr(state, rr_name)
    result = state.hl + val
    update_flags_add16(state, state.hl, val, result)
    state.hl = result & 0xFFFF

def execute_add_sp_r8(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    offset_byte = operation.operand_bytes[0]
    update_flags_sp_offset(state, state.sp, offset_byte)
    state.sp = (state.sp + to_signed8(offset_byte)) & 0xFFFF

def execute_rotate_a(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    # RLCA=0, RRCA=1, RLA=2, RRA=3 はCB命令のローテート種別と同じ並び
    op_type = (opcode_of(operation) >> 3) & 0b11
    result, carry = rotate_shift8(op_type, state.a, 1 if state.flag_c else 0)
    state.a = result
    state.flag_z = False # CB版と異なり常にクリア
    state.flag_n = False
    state.flag_h = False
    state.flag_c = carry

def execute_misc_flag(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    opcode = opcode_of(operation)
    if opcode == 0x27: # DAA
        decimal_adjust(state)
    elif opcode == 0x2F: # CPL
        state.a = (~state.a) & 0xFF
        state.flag_n = True
        state.flag_h = True
    elif opcode == 0x37: # SCF
        state.flag_n = False
        state.flag_h = False
        state.flag_c = True
    else: # CCF
        state.flag_n = False
        state.flag_h = False
        state.flag_c = not state.flag_c
