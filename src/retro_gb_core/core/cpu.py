# retro_gb_core/core/cpu.py
"""
Core Layer (抽象CPU)

このモジュールは、CPUの基本的な状態管理と命令サイクルの駆動に関する抽象化を提供します。
具体的な命令の振る舞いはInstruction Layerに移譲されます。
"""
import copy
import logging
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Tuple

from retro_gb_core.transport.bus import Bus
from retro_gb_core.core.snapshot import Snapshot, Operation, Metadata
from retro_gb_core.core.state import CpuState
from retro_gb_core.core.errors import FatalEmulationError
from retro_gb_core.common.types import SymbolMap

logger = logging.getLogger(__name__)

# @intent:responsibility 抽象CPUの基本機能とインターフェースを定義します。
class AbstractCpu(ABC):
    """
    全てのCPUエミュレーションの基底となる抽象クラス。
    Busとのインターフェース、基本的な状態管理、命令サイクルの抽象化を提供します。
    """
    # @intent:responsibility CPUの状態とバスへの参照を初期化します。
    # @intent:pre-condition `bus`は有効なBusオブジェクトである必要があります。
    def __init__(self, bus: Bus):
        self._bus = bus
        self._state: CpuState = self._create_initial_state()
        self._cycle_count: int = 0
        self._symbol_map: SymbolMap = {}
        self._reverse_symbol_map: Dict[int, str] = {}
        # 一度致命的エラーが発生すると、reset()まで実行を再開しない
        self._fault_snapshot: Optional[Snapshot] = None

    # @intent:responsibility シンボルマップを設定します。
    def set_symbol_map(self, symbol_map: SymbolMap) -> None:
        """
        シンボルマップ（名前とアドレスの対応表）を設定します。
        """
        self._symbol_map = symbol_map
        # 逆引きマップを作成して、アドレスからラベルを素早く引けるようにする
        self._reverse_symbol_map = {addr: name for name, addr in symbol_map.items()}

    def get_symbol_map(self) -> SymbolMap:
        return self._symbol_map

    # @intent:responsibility 初期状態のCpuStateオブジェクトを生成します。
    # @intent:rationale 各CPUアーキテクチャで初期状態が異なるため、抽象メソッドとして定義します。
    @abstractmethod
    def _create_initial_state(self) -> CpuState:
        """
        CPUの初期状態を生成して返します。
        """
        pass

    # @intent:responsibility CPUをリセットし、初期状態に戻します。ラッチされた致命的エラーも解除されます。
    def reset(self) -> None:
        self._state = self._create_initial_state()
        self._cycle_count = 0
        self._fault_snapshot = None

    # @intent:responsibility 現在のCPUの状態を返します。
    def get_state(self) -> CpuState:
        return self._state

    # @intent:responsibility 外部（セーブステートやデバッガ）から状態を差し替えます。
    def restore_state(self, state: CpuState, cycle_count: Optional[int] = None) -> None:
        self._state = state
        if cycle_count is not None:
            self._cycle_count = cycle_count
        self._fault_snapshot = None

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    # @intent:responsibility 致命的エラーでCPUが停止しているかを返します。
    @property
    def fault(self) -> Optional[FatalEmulationError]:
        return self._fault_snapshot.fault if self._fault_snapshot else None

    # @intent:responsibility メモリから次の命令（オペコード）をフェッチします。
    @abstractmethod
    def _fetch(self) -> int:
        """
        現在のPCからオペコードを読み出して返します。PCの更新は_update_pcで行います。
        """
        pass

    # @intent:responsibility フェッチしたオペコードを解析し、Operationオブジェクトに変換します。
    @abstractmethod
    def _decode(self, opcode: int) -> Operation:
        pass

    # @intent:responsibility デコードされた命令を実行し、経過サイクル数を返します。
    @abstractmethod
    def _execute(self, operation: Operation) -> int:
        pass

    # @intent:responsibility CPUを1ステップ（1命令または1回の割り込みディスパッチ）進め、その結果のスナップショットを返します。
    # @intent:rationale Template Methodパターンを採用し、共通の実行フロー
    #                  （ログクリア→割り込み→HALT判定→フェッチ→デコード→PC更新→実行→Snapshot生成）を定義します。
    #                  デコード/アドレス解決の致命的エラーは例外として外に出さず、faultを持つSnapshotとして返します。
    def step(self) -> Snapshot:
        """
        CPUを1ステップ進め、その時点でのCPUとバスの状態を含むSnapshotオブジェクトを返します。
        """
        if self._fault_snapshot is not None:
            return self._fault_snapshot

        # 1. 前処理: 前サイクルまでの残存ログを破棄
        self._bus.get_and_clear_activity_log()
        initial_pc = self._state.pc

        try:
            # 2. 割り込み判定 (Hook)
            interrupt_snapshot = self._service_interrupts(initial_pc)
            if interrupt_snapshot:
                return interrupt_snapshot

            # 3. HALT判定 (Hook)
            halt_snapshot = self._handle_halt(initial_pc)
            if halt_snapshot:
                return halt_snapshot

            # 4. フェッチ
            opcode = self._fetch()

            # 5. デコード
            operation = self._decode(opcode)

            # 6. PC更新 (Hook)
            self._update_pc(operation)

            # 7. 実行
            cycles = self._execute(operation)
        except FatalEmulationError as e:
            return self._create_fault_snapshot(initial_pc, e)

        # 8. 後処理 & Snapshot生成
        return self._create_snapshot(initial_pc, operation, cycles)

    # @intent:responsibility 命令境界で割り込みを処理します。
    # @intent:return 割り込みをディスパッチした場合はそのSnapshot、そうでなければNone。
    def _service_interrupts(self, current_pc: int) -> Optional[Snapshot]:
        return None

    # @intent:responsibility HALT状態の場合の処理を行います。
    # @intent:return HALT中であればその状態のSnapshot、そうでなければNone。
    def _handle_halt(self, current_pc: int) -> Optional[Snapshot]:
        return None

    # @intent:responsibility 命令実行前にPCを更新します。
    def _update_pc(self, operation: Operation) -> None:
        """
        命令実行前のPC更新。デフォルトは命令長分進める。
        """
        self._state.pc = (self._state.pc + operation.length) & 0xFFFF

    def _format_symbol_info(self, address: int, operation: Operation) -> str:
        symbol_label = self._reverse_symbol_map.get(address, "")
        symbol_info = f"{symbol_label}: " if symbol_label else ""
        symbol_info += operation.mnemonic
        if operation.operands:
            symbol_info += " " + ", ".join(operation.operands)
        return symbol_info

    # @intent:responsibility スナップショットを生成します。
    # @intent:rationale Snapshotには状態のコピーを格納し、以後のステップで内容が変化しないようにします。
    def _create_snapshot(self, initial_pc: int, operation: Operation, cycles: int,
                         interrupt: Optional[int] = None) -> Snapshot:
        bus_activity = self._bus.get_and_clear_activity_log()
        self._cycle_count += cycles
        return Snapshot(
            state=copy.copy(self._state),
            operation=operation,
            metadata=Metadata(
                cycle_count=self._cycle_count,
                symbol_info=self._format_symbol_info(initial_pc, operation),
                step_cycles=cycles,
            ),
            bus_activity=bus_activity,
            interrupt=interrupt,
        )

    # @intent:responsibility 致命的エラーのSnapshotを生成し、以後のステップのためにラッチします。
    # @intent:post-condition PCはエラーを起こした命令の先頭に戻されます。
    def _create_fault_snapshot(self, initial_pc: int, error: FatalEmulationError) -> Snapshot:
        logger.error("CPU fault at %#06x: %s", initial_pc, error)
        self._state.pc = initial_pc
        operation = Operation(opcode_hex="--", mnemonic="FAULT", operands=[str(error)], length=0)
        self._fault_snapshot = Snapshot(
            state=copy.copy(self._state),
            operation=operation,
            metadata=Metadata(cycle_count=self._cycle_count, symbol_info=f"FAULT: {error}", step_cycles=0),
            bus_activity=self._bus.get_and_clear_activity_log(),
            fault=error,
        )
        return self._fault_snapshot

    @abstractmethod
    def get_register_map(self) -> Dict[str, int]:
        """
        現在のレジスタ値を辞書形式で返す。
        デバッガやトレース出力がCPUの内部構造を知らなくても値を参照できるようにするために使用される。
        """
        pass

    @abstractmethod
    def get_flag_state(self) -> Dict[str, bool]:
        """
        現在のフラグの各ビットの状態を辞書形式で返す。
        """
        pass

    @abstractmethod
    def disassemble(self, start_addr: int, length: int) -> List[Tuple[int, str, str]]:
        """
        指定されたメモリ範囲を逆アセンブルし、(address, hex_bytes, mnemonic) のタプルリストを返す。
        """
        pass
