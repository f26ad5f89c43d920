"""
LR35902逆アセンブラモジュール。

メモリ上のバイナリデータを解析し、LR35902アセンブリ言語のニーモニック形式に変換します。
"""
from typing import List, Tuple

from retro_gb_core.transport.bus import Bus
from retro_gb_core.core.errors import DecodeError, AddressError
from retro_gb_core.arch.lr35902.instructions import decode_opcode


class _PeekBus:
    """デコーダのオペランド読み出しをpeekに差し替え、バスアクティビティログを汚さないための薄いラッパー。"""
    def __init__(self, bus: Bus):
        self._bus = bus

    def read(self, address: int) -> int:
        return self._bus.peek(address)


# @intent:responsibility 指定されたメモリ範囲のバイナリデータを解析し、アドレスとニーモニックのリストを返します。
def disassemble(bus: Bus, start_addr: int, length: int) -> List[Tuple[int, str, str]]:
    """
    メモリ上のデータを読み取り、(アドレス, 16進ダンプ, ニーモニック) のタプルのリストを返します。
    未定義オペコードは "DB $xx" として1バイトずつ出力します。
    """
    result = []
    peek_bus = _PeekBus(bus)
    current_addr = start_addr
    end_addr = start_addr + length

    while current_addr < end_addr:
        if current_addr > 0xFFFF:
            break

        try:
            opcode = bus.peek(current_addr)
        except AddressError:
            result.append((current_addr, "??", "ERR"))
            current_addr += 1
            continue

        try:
            operation = decode_opcode(opcode, peek_bus, current_addr)
        except DecodeError:
            result.append((current_addr, f"{opcode:02X}", f"DB ${opcode:02X}"))
            current_addr += 1
            continue
        except AddressError:
            result.append((current_addr, f"{opcode:02X}", "ERR"))
            current_addr += 1
            continue

        # 16進ダンプ文字列の生成 (Opcode + Operands)
        hex_bytes = [f"{opcode:02X}"]
        for b in operation.operand_bytes:
            hex_bytes.append(f"{b:02X}")
        hex_dump = " ".join(hex_bytes)

        mnemonic = operation.mnemonic
        if operation.operands:
            mnemonic += " " + ",".join(operation.operands)

        result.append((current_addr, hex_dump, mnemonic))
        current_addr += operation.length

    return result
