# retro_gb_core/core/savestate.py
"""
Core Layer (セーブステート)

マシン全体の状態を不透明なバイト列として保存・復元するためのコンテナ形式を定義します。

形式:
    magic(4) | version(u16) | section_count(u16) |
    { name_len(u8) | name | data_len(u32) | data } * section_count
数値は全てビッグエンディアンです。
"""
import struct
from abc import ABC, abstractmethod
from typing import Dict

from retro_gb_core.core.errors import SaveStateError

MAGIC = b"RGBS"
VERSION = 1

_HEADER = struct.Struct(">4sHH")
_NAME_LEN = struct.Struct(">B")
_DATA_LEN = struct.Struct(">I")


# @intent:responsibility セーブステートに参加するコンポーネントのインターフェースを定義します。
class Stateful(ABC):
    @abstractmethod
    def dump_state(self) -> bytes:
        """現在の内部状態をバイト列で返します。"""
        pass

    @abstractmethod
    def load_state(self, data: bytes) -> None:
        """dump_state() が返したバイト列から内部状態を復元します。"""
        pass


# @intent:responsibility 名前付きセクションを1つのバイト列にまとめます。
def pack_sections(sections: Dict[str, bytes]) -> bytes:
    chunks = [_HEADER.pack(MAGIC, VERSION, len(sections))]
    for name, data in sections.items():
        encoded = name.encode("ascii")
        if len(encoded) > 0xFF:
            raise SaveStateError(f"Section name too long: {name}")
        chunks.append(_NAME_LEN.pack(len(encoded)))
        chunks.append(encoded)
        chunks.append(_DATA_LEN.pack(len(data)))
        chunks.append(bytes(data))
    return b"".join(chunks)


# @intent:responsibility pack_sectionsで作成したバイト列を名前付きセクションに分解します。
# @intent:post-condition 形式が不正な場合はSaveStateErrorを発生させます。
def unpack_sections(blob: bytes) -> Dict[str, bytes]:
    if len(blob) < _HEADER.size:
        raise SaveStateError("Save state is truncated (header).")
    magic, version, count = _HEADER.unpack_from(blob, 0)
    if magic != MAGIC:
        raise SaveStateError(f"Not a save state (magic {magic!r}).")
    if version != VERSION:
        raise SaveStateError(f"Unsupported save state version {version}.")

    sections: Dict[str, bytes] = {}
    pos = _HEADER.size
    try:
        for _ in range(count):
            (name_len,) = _NAME_LEN.unpack_from(blob, pos)
            pos += _NAME_LEN.size
            name = blob[pos:pos + name_len].decode("ascii")
            pos += name_len
            (data_len,) = _DATA_LEN.unpack_from(blob, pos)
            pos += _DATA_LEN.size
            data = blob[pos:pos + data_len]
            if len(data) != data_len:
                raise SaveStateError(f"Section '{name}' is truncated.")
            pos += data_len
            sections[name] = bytes(data)
    except (struct.error, UnicodeDecodeError) as e:
        raise SaveStateError(f"Corrupted save state: {e}") from e

    if pos != len(blob):
        raise SaveStateError("Trailing bytes after last section.")
    return sections
