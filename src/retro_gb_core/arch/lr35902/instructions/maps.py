"""
LR35902 命令マッピング定義。
各命令モジュールから関数をインポートし、オペコードと関数の対応表を構築します。

基本テーブルは未定義の11オペコードを除く245エントリ、
拡張テーブル（0xCBプレフィックス）は256エントリ全てが定義されています。
"""
from retro_gb_core.transport.bus import Bus
from retro_gb_core.core.snapshot import Operation
from .alu import (
    decode_alu_r, decode_alu_d8, decode_inc_dec8, decode_inc_dec16, decode_add_hl_rr,
    decode_add_sp_r8, decode_rotate_a, decode_misc_flag,
    execute_alu_r, execute_alu_d8, execute_inc_dec8, execute_inc_dec16, execute_add_hl_rr,
    execute_add_sp_r8, execute_rotate_a, execute_misc_flag
)
from .load import (
    decode_ld_rr_d16, decode_ld_indirect, decode_ld_r_d8, decode_ld_r_r, decode_ld_a16_sp,
    decode_push_pop, decode_ldh, decode_ld_c_indirect, decode_ld_a16, decode_ld_hl_sp_r8,
    decode_ld_sp_hl,
    execute_ld_rr_d16, execute_ld_indirect, execute_ld_r_d8, execute_ld_r_r, execute_ld_a16_sp,
    execute_push_pop, execute_ldh, execute_ld_c_indirect, execute_ld_a16, execute_ld_hl_sp_r8,
    execute_ld_sp_hl
)
from .control import (
    decode_nop, decode_halt, decode_stop, decode_di, decode_ei, decode_jr, decode_jp,
    decode_jp_hl, decode_call, decode_ret, decode_rst,
    execute_nop, execute_halt, execute_stop, execute_di, execute_ei, execute_jr, execute_jp,
    execute_jp_hl, execute_call, execute_ret, execute_rst
)
from .cb import decode_cb_op, execute_rotate_shift, execute_bit, execute_res, execute_set

CB_PREFIX = 0xCB

# 未定義オペコード（実行するとDecodeError）
ILLEGAL_OPCODES = frozenset({0xD3, 0xDB, 0xDD, 0xE3, 0xE4, 0xEB, 0xEC, 0xED, 0xF4, 0xFC, 0xFD})

CB_DECODE_MAP = {op: decode_cb_op for op in range(0x100)}

CB_EXECUTE_MAP = {
    **{(0xCB00 | op): execute_rotate_shift for op in range(0x00, 0x40)},
    **{(0xCB00 | op): execute_bit for op in range(0x40, 0x80)},
    **{(0xCB00 | op): execute_res for op in range(0x80, 0xC0)},
    **{(0xCB00 | op): execute_set for op in range(0xC0, 0x100)},
}

# @intent:responsibility 0xCBプレフィックスに続くオペコードを読み、拡張テーブルでデコードします。
def decode_cb_prefix(opcode: int, bus: Bus, pc: int) -> Operation:
    cb_opcode = bus.read((pc + 1) & 0xFFFF)
    return CB_DECODE_MAP[cb_opcode](cb_opcode, bus, pc)

DECODE_MAP = {
    0x00: decode_nop,
    0x08: decode_ld_a16_sp,
    0x10: decode_stop,
    0x76: decode_halt,
    0xCB: decode_cb_prefix,
    0xE0: decode_ldh,
    0xF0: decode_ldh,
    0xE2: decode_ld_c_indirect,
    0xF2: decode_ld_c_indirect,
    0xE8: decode_add_sp_r8,
    0xE9: decode_jp_hl,
    0xEA: decode_ld_a16,
    0xFA: decode_ld_a16,
    0xF3: decode_di,
    0xFB: decode_ei,
    0xF8: decode_ld_hl_sp_r8,
    0xF9: decode_ld_sp_hl,
    0x18: decode_jr,
    0xC3: decode_jp,
    0xC9: decode_ret,
    0xD9: decode_ret,
    0xCD: decode_call,
    **{op: decode_ld_rr_d16 for op in range(0x01, 0x40, 0x10)}, # LD rr,d16
    **{op: decode_ld_indirect for op in range(0x02, 0x40, 0x10)}, # LD (rr),A
    **{op: decode_ld_indirect for op in range(0x0A, 0x40, 0x10)}, # LD A,(rr)
    **{op: decode_inc_dec16 for op in range(0x03, 0x40, 0x10)}, # INC rr
    **{op: decode_inc_dec16 for op in range(0x0B, 0x40, 0x10)}, # DEC rr
    **{op: decode_inc_dec8 for op in range(0x04, 0x40, 0x08)}, # INC r
    **{op: decode_inc_dec8 for op in range(0x05, 0x40, 0x08)}, # DEC r
    **{op: decode_ld_r_d8 for op in range(0x06, 0x40, 0x08)}, # LD r,d8
    **{op: decode_rotate_a for op in (0x07, 0x0F, 0x17, 0x1F)},
    **{op: decode_add_hl_rr for op in range(0x09, 0x40, 0x10)}, # ADD HL,rr
    **{op: decode_jr for op in range(0x20, 0x40, 0x08)}, # JR cc,r8
    **{op: decode_misc_flag for op in (0x27, 0x2F, 0x37, 0x3F)},
    **{op: decode_ld_r_r for op in range(0x40, 0x80) if op != 0x76},
    **{op: decode_alu_r for op in range(0x80, 0xC0)},
    **{op: decode_ret for op in range(0xC0, 0xE0, 0x08)}, # RET cc
    **{op: decode_push_pop for op in range(0xC1, 0x100, 0x10)}, # POP rr
    **{op: decode_push_pop for op in range(0xC5, 0x100, 0x10)}, # PUSH rr
    **{op: decode_jp for op in range(0xC2, 0xE0, 0x08)}, # JP cc,a16
    **{op: decode_call for op in range(0xC4, 0xE0, 0x08)}, # CALL cc,a16
    **{op: decode_alu_d8 for op in range(0xC6, 0x100, 0x08)},
    **{op: decode_rst for op in range(0xC7, 0x100, 0x08)},
}

EXECUTE_MAP = {
    0x00: execute_nop,
    0x08: execute_ld_a16_sp,
    0x10: execute_stop,
    0x76: execute_halt,
    0xE0: execute_ldh,
    0xF0: execute_ldh,
    0xE2: execute_ld_c_indirect,
    0xF2: execute_ld_c_indirect,
    0xE8: execute_add_sp_r8,
    0xE9: execute_jp_hl,
    0xEA: execute_ld_a16,
    0xFA: execute_ld_a16,
    0xF3: execute_di,
    0xFB: execute_ei,
    0xF8: execute_ld_hl_sp_r8,
    0xF9: execute_ld_sp_hl,
    0x18: execute_jr,
    0xC3: execute_jp,
    0xC9: execute_ret,
    0xD9: execute_ret,
    0xCD: execute_call,
    **{op: execute_ld_rr_d16 for op in range(0x01, 0x40, 0x10)},
    **{op: execute_ld_indirect for op in range(0x02, 0x40, 0x10)},
    **{op: execute_ld_indirect for op in range(0x0A, 0x40, 0x10)},
    **{op: execute_inc_dec16 for op in range(0x03, 0x40, 0x10)},
    **{op: execute_inc_dec16 for op in range(0x0B, 0x40, 0x10)},
    **{op: execute_inc_dec8 for op in range(0x04, 0x40, 0x08)},
    **{op: execute_inc_dec8 for op in range(0x05, 0x40, 0x08)},
    **{op: execute_ld_r_d8 for op in range(0x06, 0x40, 0x08)},
    **{op: execute_rotate_a for op in (0x07, 0x0F, 0x17, 0x1F)},
    **{op: execute_add_hl_rr for op in range(0x09, 0x40, 0x10)},
    **{op: execute_jr for op in range(0x20, 0x40, 0x08)},
    **{op: execute_misc_flag for op in (0x27, 0x2F, 0x37, 0x3F)},
    **{op: execute_ld_r_r for op in range(0x40, 0x80) if op != 0x76},
    **{op: execute_alu_r for op in range(0x80, 0xC0)},
    **{op: execute_ret for op in range(0xC0, 0xE0, 0x08)},
    **{op: execute_push_pop for op in range(0xC1, 0x100, 0x10)},
    **{op: execute_push_pop for op in range(0xC5, 0x100, 0x10)},
    **{op: execute_jp for op in range(0xC2, 0xE0, 0x08)},
    **{op: execute_call for op in range(0xC4, 0xE0, 0x08)},
    **{op: execute_alu_d8 for op in range(0xC6, 0x100, 0x08)},
    **{op: execute_rst for op in range(0xC7, 0x100, 0x08)},
}
