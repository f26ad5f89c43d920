"""
LR35902 データ転送命令（8/16ビットロード、スタック操作）の実装。
"""
from retro_gb_core.arch.lr35902.state import Lr35902CpuState
from retro_gb_core.transport.bus import Bus
from retro_gb_core.core.snapshot import Operation
from retro_gb_core.arch.lr35902.alu import update_flags_sp_offset, to_signed8
from .base import (
    RP_CODES, RP2_CODES, get_register_name, get_register_value, set_register_value,
    push_word, pop_word, operand_word, opcode_of, decode_imm8, decode_imm16
)

# 間接アドレッシング (LD (rr),A / LD A,(rr)) のアドレス指定子
INDIRECT_CODES = {0b00: "(BC)", 0b01: "(DE)", 0b10: "(HL+)", 0b11: "(HL-)"}

# --- Decoding Functions ---

# @intent:responsibility LD rr,d16 形式の命令をデコードします。
def decode_ld_rr_d16(opcode: int, bus: Bus, pc: int) -> Operation:
    rr_name = RP_CODES[(opcode >> 4) & 0b11]
    return decode_imm16(opcode, bus, pc, f"LD {rr_name},d16", 12)

# @intent:responsibility LD (rr),A / LD A,(rr) 形式の命令をデコードします。HL+/HL-はアクセス後にHLを増減します。
def decode_ld_indirect(opcode: int, bus: Bus, pc: int) -> Operation:
    target = INDIRECT_CODES[(opcode >> 4) & 0b11]
    is_load = (opcode & 0x0F) == 0x0A
    mnemonic = f"LD A,{target}" if is_load else f"LD {target},A"
    return Operation(opcode_hex=f"{opcode:02X}", mnemonic=mnemonic, cycle_count=8, length=1)

# @intent:responsibility LD r,d8 形式の命令をデコードします。
def decode_ld_r_d8(opcode: int, bus: Bus, pc: int) -> Operation:
    reg_name = get_register_name((opcode >> 3) & 0b111)
    return decode_imm8(opcode, bus, pc, f"LD {reg_name},d8", 8 if reg_name != "(HL)" else 12)

# @intent:responsibility LD r,r' 形式の命令をデコードします（0x76はHALTのため対象外）。
def decode_ld_r_r(opcode: int, bus: Bus, pc: int) -> Operation:
    dest = get_register_name((opcode >> 3) & 0b111)
    src = get_register_name(opcode & 0b111)
    uses_memory = "(HL)" in (dest, src)
    return Operation(
        opcode_hex=f"{opcode:02X}",
        mnemonic=f"LD {dest},{src}",
        cycle_count=8 if uses_memory else 4,
        length=1
    )

# @intent:responsibility オペコード0x08 (LD (a16),SP) をデコードします。
def decode_ld_a16_sp(opcode: int, bus: Bus, pc: int) -> Operation:
    return decode_imm16(opcode, bus, pc, "LD (a16),SP", 20)

def decode_push_pop(opcode: int, bus: Bus, pc: int) -> Operation:
    """PUSH/POP命令をデコードします。POP AFは全フラグを書き換えます。"""
    reg_name = RP2_CODES[(opcode >> 4) & 0b11]
    is_push = (opcode & 0x0F) == 0x05
    return Operation(
        opcode_hex=f"{opcode:02X}",
        mnemonic=f"{'PUSH' if is_push else 'POP'} {reg_name}",
        cycle_count=16 if is_push else 12,
        length=1,
        flag_rule="ZNHC" if (not is_push and reg_name == "AF") else "----"
    )

# @intent:responsibility 高位ページ（0xFF00+n）へのロード命令 LDH をデコードします。
def decode_ldh(opcode: int, bus: Bus, pc: int) -> Operation:
    mnemonic = "LDH (a8),A" if opcode == 0xE0 else "LDH A,(a8)"
    return decode_imm8(opcode, bus, pc, mnemonic, 12)

# @intent:responsibility LD (C),A / LD A,(C) をデコードします。
def decode_ld_c_indirect(opcode: int, bus: Bus, pc: int) -> Operation:
    mnemonic = "LD (C),A" if opcode == 0xE2 else "LD A,(C)"
    return Operation(opcode_hex=f"{opcode:02X}", mnemonic=mnemonic, cycle_count=8, length=1)

# @intent:responsibility LD (a16),A / LD A,(a16) をデコードします。
def decode_ld_a16(opcode: int, bus: Bus, pc: int) -> Operation:
    mnemonic = "LD (a16),A" if opcode == 0xEA else "LD A,(a16)"
    return decode_imm16(opcode, bus, pc, mnemonic, 16)

def decode_ld_hl_sp_r8(opcode: int, bus: Bus, pc: int) -> Operation:
    return decode_imm8(opcode, bus, pc, "LD HL,SP+r8", 12, flag_rule="00HC", signed=True)

def decode_ld_sp_hl(opcode: int, bus: Bus, pc: int) -> Operation:
    return Operation(opcode_hex="F9", mnemonic="LD SP,HL", cycle_count=8, length=1)

# --- Execution Functions ---

def execute_ld_rr_d16(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    rr_name = RP_CODES[(opcode_of(operation) >> 4) & 0b11]
    setattr(state, rr_name.lower(), operand_word(operation))

def execute_ld_indirect(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    opcode = opcode_of(operation)
    code = (opcode >> 4) & 0b11
    if code == 0b00:
        address = state.bc
    elif code == 0b01:
        address = state.de
    else:
        address = state.hl
        state.hl = (address + (1 if code == 0b10 else -1)) & 0xFFFF

    if (opcode & 0x0F) == 0x0A:
        state.a = bus.read(address)
    else:
        bus.write(address, state.a)

def execute_ld_r_d8(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    reg_name = get_register_name((opcode_of(operation) >> 3) & 0b111)
    set_register_value(state, bus, reg_name, operation.operand_bytes[0])

def execute_ld_r_r(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    opcode = opcode_of(operation)
    value = get_register_value(state, bus, get_register_name(opcode & 0b111))
    set_register_value(state, bus, get_register_name((opcode >> 3) & 0b111), value)

def execute_ld_a16_sp(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    bus.write_word(operand_word(operation), state.sp)

def execute_push_pop(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    opcode = opcode_of(operation)
    reg_name = RP2_CODES[(opcode >> 4) & 0b11].lower()
    if (opcode & 0x0F) == 0x05:
        push_word(state, bus, getattr(state, reg_name))
    else:
        # afのsetterがFの下位4ビットをマスクします
        setattr(state, reg_name, pop_word(state, bus))

def execute_ldh(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    address = 0xFF00 | operation.operand_bytes[0]
    if opcode_of(operation) == 0xE0:
        bus.write(address, state.a)
    else:
        state.a = bus.read(address)

def execute_ld_c_indirect(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    address = 0xFF00 | state.c
    if opcode_of(operation) == 0xE2:
        bus.write(address, state.a)
    else:
        state.a = bus.read(address)

def execute_ld_a16(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    address = operand_word(operation)
    if opcode_of(operation) == 0xEA:
        bus.write(address, state.a)
    else:
        state.a = bus.read(address)

def execute_ld_hl_sp_r8(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    offset_byte = operation.operand_bytes[0]
    update_flags_sp_offset(state, state.sp, offset_byte)
    state.hl = (state.sp + to_signed8(offset_byte)) & 0xFFFF

def execute_ld_sp_hl(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    state.sp = state.hl
