"""
LR35902命令セット実装パッケージ。
"""
from retro_gb_core.transport.bus import Bus
from retro_gb_core.core.snapshot import Operation
from retro_gb_core.core.errors import DecodeError
from retro_gb_core.arch.lr35902.state import Lr35902CpuState
from .maps import DECODE_MAP, EXECUTE_MAP, CB_DECODE_MAP, CB_EXECUTE_MAP, CB_PREFIX, ILLEGAL_OPCODES

# @intent:responsibility 与えられたオペコードをLR35902の命令としてデコードします。
# @intent:pre-condition `pc`はデコードするオペコードの先頭アドレスを指している必要があります。
def decode_opcode(opcode: int, bus: Bus, pc: int) -> Operation:
    """
    LR35902のオペコードをデコードし、Operationオブジェクトを返します。
    0xCBの場合は続く1バイトを拡張テーブルでデコードします。
    未定義オペコードの場合はDecodeErrorを発生させます。
    """
    decoder = DECODE_MAP.get(opcode)
    if decoder is None:
        raise DecodeError(opcode, pc)
    return decoder(opcode, bus, pc)

# @intent:responsibility デコードされた命令を実行し、経過サイクル数を返します。
# @intent:pre-condition `operation`はdecode_opcodeが返したOperationである必要があります。
def execute_instruction(operation: Operation, state: Lr35902CpuState, bus: Bus) -> int:
    """
    デコードされたLR35902命令を実行し、CPUの状態を変更します。
    条件分岐が成立した場合は branch_cycle_count を、それ以外は cycle_count を返します。
    """
    key = int(operation.opcode_hex, 16)
    executor = CB_EXECUTE_MAP.get(key) if key > 0xFF else EXECUTE_MAP.get(key)
    if executor is None:
        raise DecodeError(key & 0xFF, state.pc, extended=key > 0xFF)
    taken = executor(state, bus, operation)
    if taken and operation.branch_cycle_count is not None:
        return operation.branch_cycle_count
    return operation.cycle_count

__all__ = [
    "decode_opcode", "execute_instruction",
    "DECODE_MAP", "EXECUTE_MAP", "CB_DECODE_MAP", "CB_EXECUTE_MAP", "CB_PREFIX", "ILLEGAL_OPCODES",
]
