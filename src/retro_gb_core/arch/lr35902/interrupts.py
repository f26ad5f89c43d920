# retro_gb_core/arch/lr35902/interrupts.py
"""
割り込みコントローラ

このモジュールは、割り込み許可マスク(IE)・要求マスク(IF)を管理し、
命令境界で優先度の最も高い割り込みをCPUにディスパッチする責務を負います。

状態遷移:
    idle --(IME かつ IE & IF != 0)--> servicing : dispatch()
    servicing --(RETI)--> idle                   : notify_return()
"""
import logging
import struct
from enum import IntEnum
from typing import List, Optional

from retro_gb_core.arch.lr35902.state import Lr35902CpuState
from retro_gb_core.core.errors import InterruptProtocolError
from retro_gb_core.core.savestate import Stateful
from retro_gb_core.transport.bus import Bus, Device

logger = logging.getLogger(__name__)

INTERRUPT_MASK = 0x1F
# 割り込みディスパッチのサイクル数。HALTからの復帰時は+4サイクル。
DISPATCH_CYCLES = 20
HALT_WAKE_CYCLES = 4

# IFレジスタのブートROM実行後の値 (上位3ビットは常に1として読める)
POST_BOOT_REQUESTED = 0x01

_STATE = struct.Struct(">BBH")


# @intent:responsibility 5つの割り込み要因と、そのビット位置を定義します。ビット番号が小さいほど優先度が高くなります。
class InterruptSource(IntEnum):
    VBLANK = 0
    LCD_STAT = 1
    TIMER = 2
    SERIAL = 3
    JOYPAD = 4

    @property
    def mask(self) -> int:
        return 1 << self.value

    @property
    def vector(self) -> int:
        return 0x40 + 8 * self.value


# @intent:responsibility 割り込みの要求・許可・優先度判定・ディスパッチを管理します。
class InterruptController(Stateful):
    """
    IE/IFマスクを保持する割り込みコントローラ。
    マスター許可フラグ(IME)はCPU状態側にあり、dispatch時に参照・更新されます。
    """
    def __init__(self):
        self.enabled: int = 0x00
        self.requested: int = POST_BOOT_REQUESTED
        self._service_depth: int = 0
        self.protocol_errors: List[InterruptProtocolError] = []

    def reset(self) -> None:
        self.enabled = 0x00
        self.requested = POST_BOOT_REQUESTED
        self._service_depth = 0
        self.protocol_errors.clear()

    # @intent:responsibility 割り込み要求ビットを立てます。周辺機器から呼び出されます。
    def request(self, source: int) -> None:
        self.requested |= InterruptSource(source).mask

    # @intent:responsibility 割り込み要求ビットを下ろします。
    def acknowledge(self, source: int) -> None:
        self.requested &= ~InterruptSource(source).mask & INTERRUPT_MASK

    # @intent:responsibility 許可かつ要求されている割り込みのビットマスクを返します（IMEは考慮しません）。
    def pending(self) -> int:
        return self.enabled & self.requested & INTERRUPT_MASK

    # @intent:responsibility 保留中の割り込みのうち最も優先度の高い要因を返します。
    def highest_priority(self) -> Optional[InterruptSource]:
        pending = self.pending()
        if not pending:
            return None
        # 最下位の立っているビット
        return InterruptSource((pending & -pending).bit_length() - 1)

    @property
    def in_service(self) -> bool:
        return self._service_depth > 0

    # @intent:responsibility HALT/STOP状態のCPUを、割り込み要求に応じて復帰させます。
    # @intent:rationale HALTはIMEに関係なく保留中の割り込みで解除されます。STOPはジョイパッド要求でのみ解除されます。
    def wake(self, state: Lr35902CpuState) -> bool:
        woke = False
        if state.stopped and self.requested & InterruptSource.JOYPAD.mask:
            state.stopped = False
            woke = True
            logger.debug("CPU resumed from STOP by joypad request")
        if state.halted and self.pending():
            state.halted = False
            woke = True
            logger.debug("CPU resumed from HALT (IE=%02X IF=%02X)", self.enabled, self.requested)
        return woke

    # @intent:responsibility 命令境界で割り込みをディスパッチします。
    # @intent:pre-condition 命令の途中では呼び出さないこと。
    # @intent:post-condition ディスパッチした場合、IMEクリア・要求ビットクリア・PCプッシュ・ベクタへのジャンプが完了しています。
    def dispatch(self, state: Lr35902CpuState, bus: Bus) -> Optional[InterruptSource]:
        """
        IMEが有効で保留中の割り込みがあれば、最優先の要因を処理して返します。
        処理しなかった場合はNoneを返します。
        """
        if not state.ime:
            return None
        source = self.highest_priority()
        if source is None:
            return None

        state.ime = False
        state.ime_scheduled = False
        state.halted = False
        self.acknowledge(source)

        # 上位バイトをSP-1、下位バイトをSP-2に格納
        state.sp = (state.sp - 1) & 0xFFFF
        bus.write(state.sp, (state.pc >> 8) & 0xFF)
        state.sp = (state.sp - 1) & 0xFFFF
        bus.write(state.sp, state.pc & 0xFF)
        state.pc = source.vector

        self._service_depth += 1
        logger.debug("Dispatched %s interrupt to %#06x", source.name, source.vector)
        return source

    # @intent:responsibility RETIの実行を受けて servicing → idle に遷移します。
    # @intent:rationale サービス中の割り込みが無いRETIはプロトコル違反として記録し、実行は継続します。
    def notify_return(self, state: Lr35902CpuState) -> None:
        if self._service_depth == 0:
            error = InterruptProtocolError("RETI executed with no interrupt in service", pc=state.pc)
            logger.warning("%s", error)
            self.protocol_errors.append(error)
            return
        self._service_depth -= 1

    def dump_state(self) -> bytes:
        return _STATE.pack(self.enabled, self.requested, self._service_depth)

    def load_state(self, data: bytes) -> None:
        self.enabled, self.requested, self._service_depth = _STATE.unpack(data)


# @intent:responsibility IEレジスタ(0xFFFF)をバスに公開するデバイスです。
class InterruptEnableRegister(Device):
    def __init__(self, controller: InterruptController):
        self._controller = controller

    def read(self, address: int) -> int:
        return self._controller.enabled

    def write(self, address: int, data: int) -> None:
        self._controller.enabled = data & 0xFF


# @intent:responsibility IFレジスタ(0xFF0F)をバスに公開するデバイスです。未使用の上位3ビットは1として読めます。
class InterruptFlagRegister(Device):
    def __init__(self, controller: InterruptController):
        self._controller = controller

    def read(self, address: int) -> int:
        return 0xE0 | self._controller.requested

    def write(self, address: int, data: int) -> None:
        self._controller.requested = data & INTERRUPT_MASK
