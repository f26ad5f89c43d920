# retro_gb_core/system/machine.py
"""
DMGマシン（ドライブループとライフサイクル）

CPU、バス、割り込みコントローラ、RAM、周辺機器を所有し、
1ステップごとに経過サイクル数を周辺機器へ供給する協調スケジューリングを行います。
"""
import logging
import struct
from typing import Dict, List, Optional, Tuple, Union

from retro_gb_core.transport.bus import Bus, RAM
from retro_gb_core.core.errors import SaveStateError
from retro_gb_core.core.savestate import pack_sections, unpack_sections
from retro_gb_core.core.snapshot import Snapshot
from retro_gb_core.arch.lr35902.cpu import Lr35902Cpu
from retro_gb_core.arch.lr35902.state import Lr35902CpuState
from retro_gb_core.arch.lr35902.interrupts import InterruptController, InterruptSource
from retro_gb_core.cartridge.controllers import Cartridge
from retro_gb_core.peripherals.base import Peripheral
from retro_gb_core.peripherals.timer import Timer
from retro_gb_core.peripherals.joypad import Joypad, JoypadButton
from retro_gb_core.peripherals.serial import Serial
from retro_gb_core.peripherals.video import VideoMemory
from retro_gb_core.system.memory_map import (
    CartridgeSlot, map_dmg_devices, WRAM_SIZE, HRAM_SIZE
)

logger = logging.getLogger(__name__)

_CYCLES = struct.Struct(">Q")
_CART_ID = struct.Struct(">BH")


# @intent:responsibility DMG全体の構成要素を所有し、step()単位で協調的に駆動します。
class Machine:
    """
    Game Boy (DMG) のマシン。

    - step(): 1命令または1回の割り込みディスパッチを実行し、Snapshotを返します。
      致命的エラーは例外ではなく Snapshot.fault として返されます。
    - 非致命的なステップの後、経過サイクル数が全周辺機器の tick() に渡されます。
    - STOP中は周辺機器のクロックも停止します。
    """
    def __init__(self, strict_addressing: bool = False):
        self.bus = Bus(strict=strict_addressing)
        self.interrupts = InterruptController()
        self.cpu = Lr35902Cpu(self.bus, self.interrupts)
        self.slot = CartridgeSlot()

        self.wram = RAM(WRAM_SIZE)
        self.hram = RAM(HRAM_SIZE)
        self.timer = Timer(self.interrupts.request)
        self.joypad = Joypad(self.interrupts.request)
        self.serial = Serial(self.interrupts.request)
        self.video = VideoMemory(self.interrupts.request)
        self._peripherals: List[Peripheral] = [self.timer, self.serial, self.joypad, self.video]

        map_dmg_devices(
            self.bus, self.interrupts, self.slot, self.wram, self.hram,
            self.video, self.timer, self.joypad, self.serial
        )

    @property
    def cartridge(self) -> Optional[Cartridge]:
        return self.slot.cartridge

    @property
    def state(self) -> Lr35902CpuState:
        return self.cpu.get_state()

    @property
    def cycle_count(self) -> int:
        return self.cpu.cycle_count

    # @intent:responsibility カートリッジを装着し、電源投入直後の状態にします。
    def power_on(self, cartridge: Cartridge) -> None:
        self.slot.cartridge = cartridge
        self.reset()
        logger.info("Powered on with cartridge '%s'", cartridge.header().title)

    # @intent:responsibility CPU、割り込み、RAM、周辺機器をブートROM実行直後の状態に戻します。
    # @intent:rationale カートリッジはバンクレジスタのみ初期化し、外部RAMはバッテリーバックアップを想定して消去しません。
    def reset(self) -> None:
        self.wram.clear()
        self.hram.clear()
        self.interrupts.reset()
        if self.slot.cartridge is not None:
            self.slot.cartridge.reset()
        for peripheral in self._peripherals:
            peripheral.reset()
        self.cpu.reset()
        self.bus.get_and_clear_activity_log()

    # @intent:responsibility 外部の周辺機器（ビデオコンポーネントなど）をドライブループに接続します。
    def attach_peripheral(self, peripheral: Peripheral) -> None:
        peripheral.connect(self.interrupts.request)
        self._peripherals.append(peripheral)

    def request_interrupt(self, source: Union[InterruptSource, int]) -> None:
        self.interrupts.request(source)

    def press(self, button: Union[JoypadButton, str]) -> None:
        self.joypad.press(button)

    def release(self, button: Union[JoypadButton, str]) -> None:
        self.joypad.release(button)

    # @intent:responsibility 1ステップ実行し、経過サイクル数を周辺機器へ供給します。
    def step(self) -> Snapshot:
        was_stopped = self.state.stopped
        snapshot = self.cpu.step()
        if snapshot.is_fault:
            return snapshot

        if snapshot.state.stopped:
            if not was_stopped:
                self.timer.reset_divider()
            return snapshot

        for peripheral in self._peripherals:
            peripheral.tick(snapshot.cycles)
        return snapshot

    # @intent:responsibility 指定したステップ数またはサイクル数に達するか、致命的エラーが発生するまで実行します。
    # @intent:pre-condition max_steps と max_cycles の少なくとも一方を指定する必要があります。
    def run(self, max_steps: Optional[int] = None, max_cycles: Optional[int] = None) -> Optional[Snapshot]:
        if max_steps is None and max_cycles is None:
            raise ValueError("run() needs max_steps or max_cycles.")
        snapshot = None
        steps = 0
        elapsed = 0
        while (max_steps is None or steps < max_steps) and (max_cycles is None or elapsed < max_cycles):
            snapshot = self.step()
            if snapshot.is_fault:
                break
            steps += 1
            elapsed += snapshot.cycles
        return snapshot

    def _cartridge_id(self) -> bytes:
        cartridge = self.slot.cartridge
        if cartridge is None:
            return b""
        header = cartridge.header()
        return _CART_ID.pack(header.header_checksum, header.global_checksum) + header.title.encode("ascii", "replace")

    # @intent:responsibility マシン全体の状態を不透明なバイト列として保存します。
    def save_state(self) -> bytes:
        sections: Dict[str, bytes] = {
            "cartridge_id": self._cartridge_id(),
            "cpu": self.state.to_bytes(),
            "cycles": _CYCLES.pack(self.cpu.cycle_count),
            "interrupts": self.interrupts.dump_state(),
            "wram": self.wram.dump(),
            "hram": self.hram.dump(),
            "video": self.video.dump_state(),
            "timer": self.timer.dump_state(),
            "joypad": self.joypad.dump_state(),
            "serial": self.serial.dump_state(),
        }
        if self.slot.cartridge is not None:
            sections["cartridge"] = self.slot.cartridge.dump_state()
        return pack_sections(sections)

    # @intent:responsibility save_state()の結果から状態を復元します。
    # @intent:post-condition 別のカートリッジで作成されたデータや破損したデータの場合はSaveStateErrorを発生させ、マシンの状態は変更されません。
    def load_state(self, blob: bytes) -> None:
        sections = unpack_sections(blob)
        if sections.get("cartridge_id") != self._cartridge_id():
            raise SaveStateError("Save state was taken with a different cartridge.")
        # 途中のセクションで失敗した場合に備え、適用前の状態を控えておく
        backup = unpack_sections(self.save_state())
        try:
            cpu_state, cycles = self._apply_sections(sections)
        except SaveStateError:
            self._apply_sections(backup)
            raise
        # CPUは全セクションの適用に成功した後に差し替える（ラッチされたエラーもここで解除される）
        self.cpu.restore_state(cpu_state, cycles)
        self.bus.get_and_clear_activity_log()

    # @intent:responsibility CPU以外の構成要素にセクションを適用し、復元すべきCPU状態とサイクル数を返します。
    def _apply_sections(self, sections: Dict[str, bytes]) -> Tuple[Lr35902CpuState, int]:
        try:
            cpu_state = Lr35902CpuState.from_bytes(sections["cpu"])
            (cycles,) = _CYCLES.unpack(sections["cycles"])
            self.interrupts.load_state(sections["interrupts"])
            self.wram.load(sections["wram"])
            self.hram.load(sections["hram"])
            self.video.load_state(sections["video"])
            self.timer.load_state(sections["timer"])
            self.joypad.load_state(sections["joypad"])
            self.serial.load_state(sections["serial"])
            if self.slot.cartridge is not None:
                self.slot.cartridge.load_state(sections["cartridge"])
        except KeyError as e:
            raise SaveStateError(f"Save state is missing section {e}.") from e
        except (ValueError, struct.error) as e:
            raise SaveStateError(f"Corrupted save state: {e}") from e
        return cpu_state, cycles
