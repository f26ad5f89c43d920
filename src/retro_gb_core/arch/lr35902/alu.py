"""
LR35902 ALU (算術論理演算ユニット) およびフラグ操作ユーティリティ。

演算結果に基づいたフラグ（Z, N, H, C）の計算と更新を担当します。
8ビット演算のハーフキャリー/キャリーはビット3/ビット7、
16ビット演算（ADD HL,rr）はビット11/ビット15で判定します。
"""
from typing import Tuple

from retro_gb_core.arch.lr35902.state import Lr35902CpuState


# @intent:utility_function 8ビット加算でビット3からビット4へのキャリーが発生するかを返します。
def half_carry_add8(val1: int, val2: int, carry_in: int = 0) -> bool:
    return ((val1 & 0x0F) + (val2 & 0x0F) + carry_in) > 0x0F

# @intent:utility_function 8ビット減算でビット4からのボローが発生するかを返します。
def half_carry_sub8(val1: int, val2: int, borrow_in: int = 0) -> bool:
    return ((val1 & 0x0F) - (val2 & 0x0F) - borrow_in) < 0

# @intent:utility_function 16ビット加算でビット11からビット12へのキャリーが発生するかを返します。
def half_carry_add16(val1: int, val2: int) -> bool:
    return ((val1 & 0x0FFF) + (val2 & 0x0FFF)) > 0x0FFF

# @intent:responsibility 8ビット加算の結果に基づいて全フラグを更新します。
def update_flags_add8(state: Lr35902CpuState, val1: int, val2: int, result: int, carry_in: int = 0) -> None:
    """ADD/ADC命令のフラグを更新します。"""
    state.flag_z = (result & 0xFF) == 0
    state.flag_n = False
    state.flag_h = half_carry_add8(val1, val2, carry_in)
    state.flag_c = result > 0xFF

# @intent:responsibility 8ビット減算の結果に基づいて全フラグを更新します。
def update_flags_sub8(state: Lr35902CpuState, val1: int, val2: int, result: int, borrow_in: int = 0) -> None:
    """SUB/SBC/CP命令のフラグを更新します。"""
    state.flag_z = (result & 0xFF) == 0
    state.flag_n = True
    state.flag_h = half_carry_sub8(val1, val2, borrow_in)
    state.flag_c = result < 0

# @intent:responsibility 8ビット論理演算の結果に基づいてフラグを更新します。
def update_flags_logic8(state: Lr35902CpuState, result: int, h_flag: bool = False) -> None:
    """AND/OR/XOR命令のフラグを更新します。"""
    state.flag_z = (result & 0xFF) == 0
    state.flag_n = False
    state.flag_h = h_flag # ANDならTrue, OR/XORならFalse
    state.flag_c = False

# @intent:responsibility インクリメント/デクリメント命令のフラグを更新します（Cフラグは変化しません）。
def update_flags_inc_dec8(state: Lr35902CpuState, val: int, result: int, is_inc: bool) -> None:
    state.flag_z = (result & 0xFF) == 0
    if is_inc:
        state.flag_h = (val & 0x0F) == 0x0F
        state.flag_n = False
    else:
        state.flag_h = (val & 0x0F) == 0x00
        state.flag_n = True

# @intent:responsibility 16ビット加算（ADD HL,rr）の結果に基づいてフラグ（N, H, C）を更新します。
# @intent:rationale Zフラグは影響を受けません。
def update_flags_add16(state: Lr35902CpuState, val1: int, val2: int, result: int) -> None:
    state.flag_n = False
    state.flag_h = half_carry_add16(val1, val2)
    state.flag_c = result > 0xFFFF

# @intent:responsibility SP+e形式（ADD SP,e / LD HL,SP+e）のフラグを更新します。
# @intent:rationale H/Cは符号付きオフセットを符号なし下位バイトとして加算した結果で判定します。
def update_flags_sp_offset(state: Lr35902CpuState, sp: int, offset_byte: int) -> None:
    state.flag_z = False
    state.flag_n = False
    state.flag_h = ((sp & 0x0F) + (offset_byte & 0x0F)) > 0x0F
    state.flag_c = ((sp & 0xFF) + (offset_byte & 0xFF)) > 0xFF

# @intent:utility_function 符号付き8ビット値に変換します。
def to_signed8(value: int) -> int:
    return value - 0x100 if value & 0x80 else value


# ローテート/シフト種別 (CBプレフィックス命令のビット5-3と一致)
RLC, RRC, RL, RR, SLA, SRA, SWAP, SRL = range(8)
ROTATE_SHIFT_NAMES = ("RLC", "RRC", "RL", "RR", "SLA", "SRA", "SWAP", "SRL")

# @intent:responsibility ローテート/シフト演算を行い、(結果, キャリー出力) を返します。
# @intent:pre-condition valueは8ビット値、carry_inは0または1である必要があります。
def rotate_shift8(op_type: int, value: int, carry_in: int = 0) -> Tuple[int, bool]:
    """
    op_type: 0=RLC, 1=RRC, 2=RL, 3=RR, 4=SLA, 5=SRA, 6=SWAP, 7=SRL
    """
    if op_type == RLC:
        carry = (value & 0x80) != 0
        result = ((value << 1) | (value >> 7)) & 0xFF
    elif op_type == RRC:
        carry = (value & 0x01) != 0
        result = ((value >> 1) | (value << 7)) & 0xFF
    elif op_type == RL:
        carry = (value & 0x80) != 0
        result = ((value << 1) | carry_in) & 0xFF
    elif op_type == RR:
        carry = (value & 0x01) != 0
        result = (value >> 1) | (carry_in << 7)
    elif op_type == SLA:
        carry = (value & 0x80) != 0
        result = (value << 1) & 0xFF
    elif op_type == SRA:
        carry = (value & 0x01) != 0
        result = (value >> 1) | (value & 0x80)
    elif op_type == SWAP:
        carry = False
        result = ((value << 4) | (value >> 4)) & 0xFF
    elif op_type == SRL:
        carry = (value & 0x01) != 0
        result = value >> 1
    else:
        raise ValueError(f"Unknown rotate/shift type: {op_type}")
    return result, carry

# @intent:responsibility 直前の加減算結果をBCD補正します（DAA）。
# @intent:rationale Nフラグで直前の演算が加算か減算かを判断し、H/Cフラグから補正値を決定します。
def decimal_adjust(state: Lr35902CpuState) -> None:
    a = state.a
    correction = 0
    carry = False
    if state.flag_h or (not state.flag_n and (a & 0x0F) > 0x09):
        correction |= 0x06
    if state.flag_c or (not state.flag_n and a > 0x99):
        correction |= 0x60
        carry = True

    if state.flag_n:
        a = (a - correction) & 0xFF
    else:
        a = (a + correction) & 0xFF

    state.a = a
    state.flag_z = a == 0
    state.flag_h = False
    state.flag_c = carry
