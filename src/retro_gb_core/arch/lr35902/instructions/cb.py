"""
LR35902 0xCBプレフィックス命令（ローテート、シフト、ビット操作）の実装。

オペコードの構造:
    ビット7-6: 00=ローテート/シフト, 01=BIT, 10=RES, 11=SET
    ビット5-3: ローテート/シフト種別 または ビット番号
    ビット2-0: 対象レジスタ（110は(HL)）
"""
from retro_gb_core.arch.lr35902.state import Lr35902CpuState
from retro_gb_core.transport.bus import Bus
from retro_gb_core.core.snapshot import Operation
from retro_gb_core.arch.lr35902.alu import rotate_shift8, ROTATE_SHIFT_NAMES, SWAP
from .base import get_register_name, get_register_value, set_register_value, opcode_of

# --- Decoding Functions ---

# @intent:responsibility CBプレフィックスに続く1バイトをデコードします。
# @intent:pre-condition `pc`はプレフィックス(0xCB)のアドレスを指している必要があります。
def decode_cb_op(cb_opcode: int, bus: Bus, pc: int) -> Operation:
    reg_name = get_register_name(cb_opcode & 0b111)
    type_code = (cb_opcode >> 6) & 0b11
    index = (cb_opcode >> 3) & 0b111
    is_memory = reg_name == "(HL)"

    if type_code == 0b00:
        mnemonic = f"{ROTATE_SHIFT_NAMES[index]} {reg_name}"
        cycles = 16 if is_memory else 8
        flag_rule = "Z000" if index == SWAP else "Z00C"
    elif type_code == 0b01:
        mnemonic = f"BIT {index},{reg_name}"
        cycles = 12 if is_memory else 8
        flag_rule = "Z01-"
    else:
        mnemonic = f"{'RES' if type_code == 0b10 else 'SET'} {index},{reg_name}"
        cycles = 16 if is_memory else 8
        flag_rule = "----"

    return Operation(
        opcode_hex=f"CB{cb_opcode:02X}",
        mnemonic=mnemonic,
        operand_bytes=[cb_opcode],
        cycle_count=cycles,
        length=2,
        flag_rule=flag_rule
    )

# --- Execution Functions ---

def execute_rotate_shift(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    cb_opcode = opcode_of(operation)
    reg_name = get_register_name(cb_opcode & 0b111)
    val = get_register_value(state, bus, reg_name)
    result, carry = rotate_shift8((cb_opcode >> 3) & 0b111, val, 1 if state.flag_c else 0)
    set_register_value(state, bus, reg_name, result)
    state.flag_z = result == 0
    state.flag_n = False
    state.flag_h = False
    state.flag_c = carry

def execute_bit(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    cb_opcode = opcode_of(operation)
    val = get_register_value(state, bus, get_register_name(cb_opcode & 0b111))
    state.flag_z = (val & (1 << ((cb_opcode >> 3) & 0b111))) == 0
    state.flag_n = False
    state.flag_h = True

def execute_res(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    cb_opcode = opcode_of(operation)
    reg_name = get_register_name(cb_opcode & 0b111)
    val = get_register_value(state, bus, reg_name)
    set_register_value(state, bus, reg_name, val & ~(1 << ((cb_opcode >> 3) & 0b111)))

def execute_set(state: Lr35902CpuState, bus: Bus, operation: Operation) -> None:
    cb_opcode = opcode_of(operation)
    reg_name = get_register_name(cb_opcode & 0b111)
    val = get_register_value(state, bus, reg_name)
    set_register_value(state, bus, reg_name, val | (1 << ((cb_opcode >> 3) & 0b111)))
