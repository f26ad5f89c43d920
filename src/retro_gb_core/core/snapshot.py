# retro_gb_core/core/snapshot.py
"""
実行状態の不変スナップショット

このモジュールは、1ステップ（1命令または1回の割り込みディスパッチ）の結果を記録する
不変のデータ構造を定義します。ドライブループへの経過サイクル数の報告と、
致命的エラーの伝達、デバッグ時の状態記録に用いる責務を負います。
"""
from dataclasses import dataclass, field
from typing import List, Optional

from retro_gb_core.core.state import CpuState
from retro_gb_core.core.errors import FatalEmulationError
from retro_gb_core.transport.bus import BusAccessType, BusAccess


# @intent:responsibility 実行された命令の詳細を記録します。
@dataclass(frozen=True) # 不変データ構造
class Operation:
    """
    デコードされた命令の記述子。
    オペコード、ニーモニック、オペランド、サイクル数、フラグ更新規則を保持します。
    """
    opcode_hex: str # 例: "C3", 拡張命令は "CB7C"
    mnemonic: str # 例: "JP a16"
    operands: List[str] = field(default_factory=list) # 例: ["$1234"]
    operand_bytes: List[int] = field(default_factory=list) # 生のオペランドバイト
    cycle_count: int = 0 # 固定サイクル数（条件分岐では不成立時）
    length: int = 1 # 命令のバイト長
    branch_cycle_count: Optional[int] = None # 条件分岐が成立した場合のサイクル数
    # Z N H C の順。Z/N/H/C=計算, 0=クリア, 1=セット, -=変化なし
    flag_rule: str = "----"


# @intent:responsibility 実行に関するメタデータを記録します。
@dataclass(frozen=True) # 不変データ構造
class Metadata:
    """
    実行に関するメタデータ（累計サイクル数、このステップの経過サイクル数、シンボル情報）。
    """
    cycle_count: int
    symbol_info: Optional[str] = None # 例: "main_loop: JP $1234"
    step_cycles: int = 0


# @intent:responsibility ある一時点におけるCPUとバスの状態を不変に記録します。
@dataclass(frozen=True) # 不変データ構造
class Snapshot:
    """
    ステップ実行の結果。
    state は実行後の状態のコピーであり、以後のステップの影響を受けません。
    fault が設定されている場合、そのステップは致命的エラーで中断されています。
    """
    state: CpuState
    operation: Operation
    metadata: Metadata
    bus_activity: List[BusAccess] = field(default_factory=list)
    fault: Optional[FatalEmulationError] = None
    interrupt: Optional[int] = None # ディスパッチした割り込みのビット番号

    @property
    def cycles(self) -> int:
        return self.metadata.step_cycles

    @property
    def is_fault(self) -> bool:
        return self.fault is not None


__all__ = ["BusAccessType", "BusAccess", "Operation", "Metadata", "Snapshot"]
