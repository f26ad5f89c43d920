# retro_gb_core/debugger/debugger.py
"""
デバッガモジュール。

マシンの実行を制御し、ユーザーが指定した条件（ブレークポイント）で
実行を中断させる責務を負います。
"""
import logging
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Deque, List, Optional, Tuple

from retro_gb_core.core.snapshot import Snapshot, BusAccessType
from retro_gb_core.core.state import CpuState
from retro_gb_core.system.machine import Machine

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 256

# @intent:responsibility ブレークポイントの条件タイプを定義します。
class BreakpointConditionType(Enum):
    PC_MATCH = "PC_MATCH"               # プログラムカウンタが特定のアドレスに一致
    MEMORY_READ = "MEMORY_READ"         # 特定のアドレスが読み込まれた
    MEMORY_WRITE = "MEMORY_WRITE"       # 特定のアドレスに書き込まれた
    REGISTER_VALUE = "REGISTER_VALUE"   # 特定のレジスタが特定の値になった
    REGISTER_CHANGE = "REGISTER_CHANGE" # 特定のレジスタの値が変化した
    INTERRUPT = "INTERRUPT"             # 割り込みがディスパッチされた（valueで要因を限定）

# @intent:responsibility ブレークポイントをトリガーする条件を定義します。
@dataclass(frozen=True)
class BreakpointCondition:
    condition_type: BreakpointConditionType
    value: Optional[int] = None           # PC_MATCH, REGISTER_VALUE, INTERRUPTで使用
    address: Optional[int] = None         # MEMORY_READ, MEMORY_WRITEで使用
    register_name: Optional[str] = None   # REGISTER_VALUE, REGISTER_CHANGEで使用
    enabled: bool = True

# @intent:responsibility マシンの実行制御、ブレークポイント管理、実行履歴の巻き戻しを行います。
class Debugger:
    """
    Machineの実行を制御し、ブレークポイントの管理を行うクラス。
    各ステップの直前にセーブステートを記録し、step_back()でその時点へ戻ります。
    """
    def __init__(self, machine: Machine, history_limit: int = DEFAULT_HISTORY_LIMIT):
        self._machine = machine
        self._breakpoints: List[BreakpointCondition] = []
        self._running: bool = False
        self._previous_state: CpuState = replace(machine.state)
        self._last_snapshot: Optional[Snapshot] = None
        # (ステップ前のセーブステート, ステップ結果) の履歴
        self._history: Deque[Tuple[bytes, Snapshot]] = deque(maxlen=history_limit)

    @property
    def history_limit(self) -> int:
        return self._history.maxlen

    def add_breakpoint(self, condition: BreakpointCondition) -> None:
        if condition not in self._breakpoints:
            self._breakpoints.append(condition)

    def update_breakpoint(self, old_condition: BreakpointCondition, new_condition: BreakpointCondition) -> None:
        if old_condition in self._breakpoints:
            idx = self._breakpoints.index(old_condition)
            self._breakpoints[idx] = new_condition

    def remove_breakpoint(self, condition: BreakpointCondition) -> None:
        if condition in self._breakpoints:
            self._breakpoints.remove(condition)

    def get_breakpoints(self) -> List[BreakpointCondition]:
        return list(self._breakpoints)

    def get_history(self) -> List[Snapshot]:
        return [snapshot for _, snapshot in self._history]

    def get_last_snapshot(self) -> Optional[Snapshot]:
        return self._last_snapshot

    def _register_value(self, state: CpuState, name: str) -> Optional[int]:
        try:
            return state.get_register(name)
        except (AttributeError, KeyError):
            return None

    def _pc_breakpoint_hit(self, pc: int) -> bool:
        return any(
            bp.enabled and bp.condition_type == BreakpointConditionType.PC_MATCH and bp.value == pc
            for bp in self._breakpoints
        )

    # @intent:responsibility Snapshotに基づいてPC_MATCH以外のブレークポイントをチェックします。
    def _check_other_breakpoints(self, snapshot: Snapshot) -> bool:
        current_state = snapshot.state

        for bp in self._breakpoints:
            if not bp.enabled:
                continue

            if bp.condition_type == BreakpointConditionType.MEMORY_READ:
                for access in snapshot.bus_activity:
                    if access.access_type == BusAccessType.READ and access.address == bp.address:
                        return True
            elif bp.condition_type == BreakpointConditionType.MEMORY_WRITE:
                for access in snapshot.bus_activity:
                    if access.access_type == BusAccessType.WRITE and access.address == bp.address:
                        return True
            elif bp.condition_type == BreakpointConditionType.REGISTER_VALUE:
                if bp.register_name and self._register_value(current_state, bp.register_name) == bp.value:
                    return True
            elif bp.condition_type == BreakpointConditionType.REGISTER_CHANGE:
                if bp.register_name:
                    current = self._register_value(current_state, bp.register_name)
                    previous = self._register_value(self._previous_state, bp.register_name)
                    if current is not None and current != previous:
                        return True
            elif bp.condition_type == BreakpointConditionType.INTERRUPT:
                if snapshot.interrupt is not None and (bp.value is None or bp.value == snapshot.interrupt):
                    return True
        return False

    # @intent:responsibility マシンを1ステップ実行し、その結果のSnapshotを返します。
    def step_instruction(self) -> Snapshot:
        self._previous_state = replace(self._machine.state)
        saved = self._machine.save_state()
        snapshot = self._machine.step()
        self._last_snapshot = snapshot
        self._history.append((saved, snapshot))
        return snapshot

    # @intent:responsibility 実行履歴を1ステップ戻り、マシン全体の状態を復元します。
    # @intent:return 戻った時点の直前のSnapshot。履歴の先頭まで戻った場合はNone。
    def step_back(self) -> Optional[Snapshot]:
        if not self._history:
            return None

        saved, _ = self._history.pop()
        self._machine.load_state(saved)

        if self._history:
            self._last_snapshot = self._history[-1][1]
        else:
            self._last_snapshot = None
        self._previous_state = replace(self._machine.state)
        return self._last_snapshot

    # @intent:responsibility ブレークポイント、致命的エラー、stop()、またはmax_stepsに達するまで実行を継続します。
    def run(self, max_steps: Optional[int] = None) -> Optional[Snapshot]:
        self._running = True
        steps = 0

        # 現在のPCにブレークポイントがある場合は、まず1ステップ進める
        if self._pc_breakpoint_hit(self._machine.state.pc):
            self.step_instruction()
            steps += 1

        while self._running and (max_steps is None or steps < max_steps):
            current_pc = self._machine.state.pc
            if self._pc_breakpoint_hit(current_pc):
                self._running = False
                logger.info("Breakpoint hit at PC: %#06x", current_pc)
                break

            snapshot = self.step_instruction()
            steps += 1

            if snapshot.is_fault:
                self._running = False
                logger.info("Stopped on fault: %s", snapshot.fault)
                break

            if self._check_other_breakpoints(snapshot):
                self._running = False
                logger.info("Breakpoint hit at PC: %#06x", snapshot.state.pc)

        self._running = False
        return self._last_snapshot

    # @intent:responsibility 実行履歴を逆方向へ連続的に戻し、ブレークポイントで停止します。
    def run_back(self) -> Optional[Snapshot]:
        self._running = True

        while self._running:
            snapshot = self.step_back()

            if snapshot is None:
                self._running = False
                logger.info("Reached start of history.")
                return None

            if self._pc_breakpoint_hit(snapshot.state.pc) or self._check_other_breakpoints(snapshot):
                self._running = False
                logger.info("Reverse breakpoint hit at PC: %#06x", snapshot.state.pc)

        return self._last_snapshot

    def stop(self) -> None:
        self._running = False
