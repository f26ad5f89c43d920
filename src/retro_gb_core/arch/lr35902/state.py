# retro_gb_core/arch/lr35902/state.py
"""
Sharp LR35902 CPU固有の状態定義。

このモジュールは、LR35902のレジスタ、フラグ、および実行サブ状態（HALT/STOP、IME）を
保持するデータ構造を定義します。
"""
import struct
from dataclasses import dataclass

from retro_gb_core.core.state import CpuState

# LR35902フラグビットマスク
# @intent:constant Fレジスタ内の各フラグビットの位置を定義します。下位4ビットは常に0です。
Z_FLAG = 0b10000000  # Zero (ゼロ)
N_FLAG = 0b01000000  # Subtract (減算)
H_FLAG = 0b00100000  # Half Carry (ハーフキャリー)
C_FLAG = 0b00010000  # Carry (キャリー)
FLAG_MASK = 0xF0

_REGISTERS_8 = ("a", "f", "b", "c", "d", "e", "h", "l")
_REGISTERS_16 = ("af", "bc", "de", "hl", "sp", "pc")

# a f b c d e h l | sp pc | halted stopped halt_bug ime ime_scheduled
_PACKED = struct.Struct(">8BHH5B")


# @intent:responsibility LR35902 CPUの全てのレジスタとフラグの状態を保持します。
@dataclass
class Lr35902CpuState(CpuState):
    """
    LR35902 CPUのレジスタ状態を保持するデータクラス。
    CpuStateを拡張し、8ビットレジスタ8本と実行サブ状態を含みます。
    """
    a: int = 0x00
    f: int = 0x00  # Flag register (ZNHC0000)
    b: int = 0x00
    c: int = 0x00
    d: int = 0x00
    e: int = 0x00
    h: int = 0x00
    l: int = 0x00

    halted: bool = False # HALT命令による停止
    stopped: bool = False # STOP命令による停止
    halt_bug: bool = False # 次のフェッチでPCがインクリメントされない
    ime: bool = False # Interrupt Master Enable
    ime_scheduled: bool = False # EIの1命令遅延

    # @intent:responsibility DMGブートROM実行直後のレジスタ値を持つ状態を生成します。
    @classmethod
    def post_boot(cls) -> "Lr35902CpuState":
        return cls(
            a=0x01, f=0xB0, b=0x00, c=0x13, d=0x00, e=0xD8, h=0x01, l=0x4D,
            sp=0xFFFE, pc=0x0100,
        )

    # @intent:accessor Fレジスタの各フラグビットにアクセスするためのプロパティを提供します。
    # @intent:rationale 「変化なし」はプロパティに触れないことで表現され、「クリア」とは区別されます。

    @property
    def flag_z(self) -> bool:
        return (self.f & Z_FLAG) != 0

    @flag_z.setter
    def flag_z(self, value: bool) -> None:
        if value:
            self.f |= Z_FLAG
        else:
            self.f &= ~Z_FLAG & 0xFF

    @property
    def flag_n(self) -> bool:
        return (self.f & N_FLAG) != 0

    @flag_n.setter
    def flag_n(self, value: bool) -> None:
        if value:
            self.f |= N_FLAG
        else:
            self.f &= ~N_FLAG & 0xFF

    @property
    def flag_h(self) -> bool:
        return (self.f & H_FLAG) != 0

    @flag_h.setter
    def flag_h(self, value: bool) -> None:
        if value:
            self.f |= H_FLAG
        else:
            self.f &= ~H_FLAG & 0xFF

    @property
    def flag_c(self) -> bool:
        return (self.f & C_FLAG) != 0

    @flag_c.setter
    def flag_c(self, value: bool) -> None:
        if value:
            self.f |= C_FLAG
        else:
            self.f &= ~C_FLAG & 0xFF

    # 16-bit register pairs
    @property
    def af(self) -> int:
        return (self.a << 8) | self.f

    @af.setter
    def af(self, value: int) -> None:
        self.a = (value >> 8) & 0xFF
        self.f = value & FLAG_MASK

    @property
    def bc(self) -> int:
        return (self.b << 8) | self.c

    @bc.setter
    def bc(self, value: int) -> None:
        self.b = (value >> 8) & 0xFF
        self.c = value & 0xFF

    @property
    def de(self) -> int:
        return (self.d << 8) | self.e

    @de.setter
    def de(self, value: int) -> None:
        self.d = (value >> 8) & 0xFF
        self.e = value & 0xFF

    @property
    def hl(self) -> int:
        return (self.h << 8) | self.l

    @hl.setter
    def hl(self, value: int) -> None:
        self.h = (value >> 8) & 0xFF
        self.l = value & 0xFF

    # @intent:accessor レジスタ名（8ビット単体または16ビットペア）で値を取得します。
    def get_register(self, name: str) -> int:
        key = name.lower()
        if key not in _REGISTERS_8 and key not in _REGISTERS_16:
            raise KeyError(f"Unknown register: {name}")
        return getattr(self, key)

    # @intent:accessor レジスタ名で値を設定します。幅に合わせてマスクされ、Fの下位4ビットは0に保たれます。
    def set_register(self, name: str, value: int) -> None:
        key = name.lower()
        if key == "f":
            self.f = value & FLAG_MASK
        elif key in _REGISTERS_8:
            setattr(self, key, value & 0xFF)
        elif key in _REGISTERS_16:
            setattr(self, key, value & 0xFFFF)
        else:
            raise KeyError(f"Unknown register: {name}")

    def to_bytes(self) -> bytes:
        return _PACKED.pack(
            self.a, self.f, self.b, self.c, self.d, self.e, self.h, self.l,
            self.sp, self.pc,
            self.halted, self.stopped, self.halt_bug, self.ime, self.ime_scheduled,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "Lr35902CpuState":
        (a, f, b, c, d, e, h, l, sp, pc,
         halted, stopped, halt_bug, ime, ime_scheduled) = _PACKED.unpack(data)
        return cls(
            a=a, f=f & FLAG_MASK, b=b, c=c, d=d, e=e, h=h, l=l, sp=sp, pc=pc,
            halted=bool(halted), stopped=bool(stopped), halt_bug=bool(halt_bug),
            ime=bool(ime), ime_scheduled=bool(ime_scheduled),
        )
