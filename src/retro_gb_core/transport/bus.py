# retro_gb_core/transport/bus.py
"""
Transport Layer (共通バス)

このモジュールは、16ビットのメモリアドレス空間を抽象化し、
読み書きアクセスを適切なデバイス（RAM、カートリッジ、周辺機器レジスタ）に委譲する責務を負います。
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Tuple, Dict
from dataclasses import dataclass
from enum import Enum

from retro_gb_core.core.errors import AddressError

logger = logging.getLogger(__name__)

# 未接続領域の読み出し値（オープンバス）
OPEN_BUS_VALUE = 0xFF

# @intent:responsibility バスアクセスを記録するためのタイプを定義します。
class BusAccessType(Enum):
    READ = "READ"
    WRITE = "WRITE"

# @intent:responsibility 個々のバスアクセス操作を記録します。
@dataclass(frozen=True) # 不変データ構造
class BusAccess:
    """
    バス上で行われた単一のアクセス（読み込みまたは書き込み）を記録するデータクラス。
    """
    address: int
    data: int # 8bit value
    access_type: BusAccessType

# @intent:responsibility バスの抽象デバイスインターフェースを定義します。
class Device(ABC):
    """
    バスに接続されるデバイスの抽象基底クラス。
    全てのデバイスはreadとwriteのインターフェースを実装する必要があります。
    アドレスはデバイス内でのオフセットとして渡されます。
    """
    # @intent:responsibility 指定されたオフセットから8bitのデータを読み出す責務を負います。
    @abstractmethod
    def read(self, address: int) -> int:
        pass

    # @intent:responsibility 指定されたオフセットに8bitのデータを書き込みます。
    @abstractmethod
    def write(self, address: int, data: int) -> None:
        pass

# @intent:responsibility 基本的なRAMデバイスの機能を提供します。
class RAM(Device):
    """
    ワークRAM、ハイRAM、VRAM、OAMなどに使用する汎用RAMデバイス。
    電源投入時は0でクリアされます。
    """
    # @intent:pre-condition sizeは正の整数である必要があります。
    def __init__(self, size: int):
        if not isinstance(size, int) or size <= 0:
            raise ValueError("RAM size must be a positive integer.")
        self._memory = bytearray(size)
        self._size = size

    def read(self, address: int) -> int:
        if not 0 <= address < self._size:
            raise IndexError(f"Address {address} out of bounds for RAM of size {self._size}.")
        return self._memory[address]

    def write(self, address: int, data: int) -> None:
        if not 0 <= address < self._size:
            raise IndexError(f"Address {address} out of bounds for RAM of size {self._size}.")
        if not 0 <= data <= 0xFF:
            raise ValueError(f"Data {data} is not an 8-bit value.")
        self._memory[address] = data

    def get_size(self) -> int:
        return self._size

    # @intent:responsibility 内容全体をバイト列として返します（セーブステート用）。
    def dump(self) -> bytes:
        return bytes(self._memory)

    # @intent:responsibility 内容全体を置き換えます。サイズが一致しない場合はValueError。
    def load(self, data: bytes) -> None:
        if len(data) != self._size:
            raise ValueError(f"RAM image size {len(data)} does not match RAM size {self._size}.")
        self._memory[:] = data

    def clear(self) -> None:
        self._memory[:] = bytes(self._size)

# @intent:responsibility 別デバイスの記憶領域を同じオフセットで公開するミラーデバイスです。
# @intent:rationale エコーRAMは記憶領域を複製せず、アドレスの付け替えだけで実現します。
class Mirror(Device):
    def __init__(self, target: Device):
        self._target = target

    def read(self, address: int) -> int:
        return self._target.read(address)

    def write(self, address: int, data: int) -> None:
        self._target.write(address, data)

# @intent:responsibility 使用禁止領域や未実装レジスタに対して、定義済みの値を返すデバイスです。
class OpenBus(Device):
    """
    読み出しは常に固定値、書き込みは破棄されます。
    """
    def __init__(self, value: int = OPEN_BUS_VALUE):
        self._value = value

    def read(self, address: int) -> int:
        return self._value

    def write(self, address: int, data: int) -> None:
        # Intentional: writes to unmapped registers are dropped.
        pass

# @intent:responsibility メモリアドレス空間を管理し、デバイスへのアクセスをディスパッチする共通バス。
# @intent:rationale バスの全てのアクセスを記録し、Snapshotに含めることでシステムの観測可能性を高めます。
class Bus:
    """
    メモリアドレス空間を管理し、デバイスへのアクセスをディスパッチする共通バス。

    メモリマップは登録順に検索され、最初に一致したデバイスがアクセスを処理します。
    したがって優先度の高い領域（IEレジスタ、エコーRAMなど）を先に登録します。
    どの領域にも一致しないアドレスは、strict=True の場合 AddressError となり、
    それ以外の場合はオープンバス値を返して書き込みを破棄します。
    """
    def __init__(self, strict: bool = False):
        # メモリマップ: (start_address, end_address, device) のタプルリスト
        self._memory_map: List[Tuple[int, int, Device]] = []
        self._bus_activity_log: List[BusAccess] = []
        # アドレス -> (device, offset) の解決結果キャッシュ
        self._resolved: Dict[int, Tuple[Device, int]] = {}
        self.strict = strict

    def _log_access(self, address: int, data: int, access_type: BusAccessType) -> None:
        self._bus_activity_log.append(BusAccess(address=address, data=data, access_type=access_type))

    # @intent:responsibility 記録されたバスアクティビティログを取得し、クリアします。
    def get_and_clear_activity_log(self) -> List[BusAccess]:
        log = self._bus_activity_log
        self._bus_activity_log = []
        return log

    # @intent:responsibility 指定されたアドレス範囲にデバイスを登録します。
    # @intent:pre-condition start_address <= end_address かつ 0x0000-0xFFFF 内であり、deviceはDeviceのインスタンスである必要があります。
    # @intent:rationale アドレス範囲の重複は許容します。重複時は先に登録された方が優先されます。
    def register_device(self, start_address: int, end_address: int, device: Device) -> None:
        """
        指定されたアドレス範囲にデバイスを登録します。
        RAMデバイスの場合、そのサイズが指定されたアドレス範囲と一致する必要があります。
        """
        if not (0 <= start_address <= end_address <= 0xFFFF):
            raise ValueError("Invalid address range: start_address must be <= end_address and within 0x0000-0xFFFF.")
        if not isinstance(device, Device):
            raise TypeError("Device must be an instance of a class derived from Device.")

        if isinstance(device, RAM):
            expected_size = end_address - start_address + 1
            if device.get_size() != expected_size:
                raise ValueError(
                    f"Registered {type(device).__name__} device size ({device.get_size()} bytes) does not match "
                    f"the specified address range size ({expected_size} bytes)."
                )

        self._memory_map.append((start_address, end_address, device))
        self._resolved.clear()

    def get_memory_map(self) -> List[Tuple[int, int, Device]]:
        return list(self._memory_map)

    # @intent:responsibility 指定されたアドレスに対応するデバイスとオフセットを検索します。
    # @intent:post-condition デバイスが見つからなかった場合、AddressErrorを発生させます。
    def _find_device(self, address: int, access: str = "read") -> Tuple[Device, int]:
        resolved = self._resolved.get(address)
        if resolved is not None:
            return resolved
        for start, end, device in self._memory_map:
            if start <= address <= end:
                resolved = (device, address - start)
                self._resolved[address] = resolved
                return resolved
        raise AddressError(address, access)

    # @intent:responsibility アドレス解決に失敗した場合の方針（strict/release）を適用します。
    def _unmapped(self, error: AddressError) -> None:
        if self.strict or not 0 <= error.address <= 0xFFFF:
            raise error
        logger.warning("%s Falling back to open bus.", error)

    # @intent:responsibility 指定されたアドレスから8bitのデータを読み出します。
    def read(self, address: int) -> int:
        """
        指定されたアドレスから8bitのデータを読み出します。
        アクセスはログに記録されます。
        """
        try:
            device, offset = self._find_device(address, "read")
        except AddressError as e:
            self._unmapped(e)
            data = OPEN_BUS_VALUE
        else:
            data = device.read(offset)
        self._log_access(address, data, BusAccessType.READ)
        return data

    # @intent:responsibility ログを記録せずに指定されたアドレスからデータを読み出します。
    def peek(self, address: int) -> int:
        """
        指定されたアドレスから8bitのデータを読み出します（ログ記録なし）。
        逆アセンブラやデバッガなどのインスペクタ用。
        """
        try:
            device, offset = self._find_device(address, "read")
        except AddressError as e:
            self._unmapped(e)
            return OPEN_BUS_VALUE
        return device.read(offset)

    # @intent:responsibility 指定されたアドレスに8bitのデータを書き込みます。
    def write(self, address: int, data: int) -> None:
        """
        指定されたアドレスに8bitのデータを書き込みます。
        ROMウィンドウへの書き込みはカートリッジデバイス側でバンク制御として解釈されます。
        """
        try:
            device, offset = self._find_device(address, "write")
        except AddressError as e:
            self._unmapped(e)
        else:
            device.write(offset, data)
        self._log_access(address, data, BusAccessType.WRITE)

    # @intent:responsibility 16ビット値をリトルエンディアンで読み出します。
    def read_word(self, address: int) -> int:
        low = self.read(address & 0xFFFF)
        high = self.read((address + 1) & 0xFFFF)
        return (high << 8) | low

    # @intent:responsibility 16ビット値をリトルエンディアンで書き込みます。
    def write_word(self, address: int, value: int) -> None:
        self.write(address & 0xFFFF, value & 0xFF)
        self.write((address + 1) & 0xFFFF, (value >> 8) & 0xFF)
