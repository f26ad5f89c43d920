# retro_gb_core/peripherals/base.py
"""
周辺機器の共通インターフェース。

周辺機器はバス上のレジスタウィンドウを担当するDeviceであり、
ドライブループから経過サイクル数を受け取って自身の時間を進めます。
割り込みは InterruptController.request を通じてのみ要求します。
"""
from abc import abstractmethod
from typing import Callable, Optional

from retro_gb_core.core.savestate import Stateful
from retro_gb_core.transport.bus import Device

# 割り込み要求コールバック: 引数は割り込み要因のビット番号
InterruptRequester = Callable[[int], None]


# @intent:responsibility メモリマップドレジスタを持ち、サイクル駆動される周辺機器の基底クラスです。
class Peripheral(Device, Stateful):
    def __init__(self, request_interrupt: Optional[InterruptRequester] = None):
        self._request_interrupt = request_interrupt

    def connect(self, request_interrupt: InterruptRequester) -> None:
        self._request_interrupt = request_interrupt

    def _raise_interrupt(self, source: int) -> None:
        if self._request_interrupt is not None:
            self._request_interrupt(source)

    # @intent:responsibility 経過サイクル数だけ内部状態を進めます。時間を持たない周辺機器は何もしません。
    def tick(self, cycles: int) -> None:
        pass

    # @intent:responsibility 電源投入直後の状態に戻します。
    @abstractmethod
    def reset(self) -> None:
        pass
