# retro_gb_core/core/errors.py
"""
Core Layer (エラー分類)

エミュレーション中に発生するエラーの階層を定義します。
致命的なエラー（デコード不能、アドレス解決不能）は step() の戻り値として
呼び出し元に返され、回復可能なエラーはログに記録されて実行が継続されます。
"""
from typing import Optional


# @intent:responsibility 全てのエミュレーションエラーの基底クラスです。
class EmulationError(Exception):
    pass


# @intent:responsibility 実行を停止すべき致命的なエラーの基底クラスです。
# @intent:rationale step()はこの系統の例外を捕捉し、Snapshotのfaultとして返します。
class FatalEmulationError(EmulationError):
    pass


# @intent:responsibility 基本テーブルにも拡張テーブルにも存在しないオペコードを表します。
class DecodeError(FatalEmulationError, ValueError):
    def __init__(self, opcode: int, address: int, extended: bool = False):
        self.opcode = opcode
        self.address = address
        self.extended = extended
        prefix = "CB " if extended else ""
        super().__init__(f"Undefined opcode {prefix}{opcode:02X} at {address:#06x}")


# @intent:responsibility どのパーティションにも解決できなかったアドレスを表します。
# @intent:rationale IndexErrorを継承し、既存のバス利用側（範囲外アクセス=IndexError）との互換を保ちます。
class AddressError(FatalEmulationError, IndexError):
    def __init__(self, address: int, access: str = "read"):
        self.address = address
        self.access = access
        super().__init__(f"Address {address:#06x} not mapped to any device ({access}).")


# @intent:responsibility IME/RETIの誤用を表します。記録のみで実行は継続されます。
class InterruptProtocolError(EmulationError):
    def __init__(self, message: str, pc: Optional[int] = None):
        self.pc = pc
        if pc is not None:
            message = f"{message} (PC={pc:#06x})"
        super().__init__(message)


# @intent:responsibility カートリッジイメージの読み込み時エラー（ヘッダ不正、未対応MBCなど）。
class CartridgeError(EmulationError, ValueError):
    pass


# @intent:responsibility セーブステートの形式不一致や破損を表します。
class SaveStateError(EmulationError, ValueError):
    pass
