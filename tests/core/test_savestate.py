# tests/core/test_savestate.py
"""
retro_gb_core.core.savestateモジュールの単体テスト。
"""
import pytest

from retro_gb_core.core.errors import SaveStateError
from retro_gb_core.core.savestate import pack_sections, unpack_sections, MAGIC

# @intent:test_suite 名前付きセクションのコンテナ形式と、破損データの検出を検証します。

class TestSaveStateContainer:

    def test_round_trip(self):
        sections = {"cpu": b"\x01\x02", "empty": b"", "wram": bytes(range(256))}
        blob = pack_sections(sections)
        assert blob.startswith(MAGIC)
        assert unpack_sections(blob) == sections

    @pytest.mark.parametrize("blob", [
        b"",
        b"RGB",
        b"XXXX\x00\x01\x00\x00",
    ])
    def test_rejects_invalid_header(self, blob):
        with pytest.raises(SaveStateError):
            unpack_sections(blob)

    def test_rejects_unknown_version(self):
        blob = bytearray(pack_sections({}))
        blob[5] = 0x02
        with pytest.raises(SaveStateError, match="version"):
            unpack_sections(bytes(blob))

    # @intent:test_case_truncated 途中で切れたデータや余分な末尾データは拒否されます。
    def test_rejects_truncated_and_trailing_data(self):
        blob = pack_sections({"cpu": b"\x01\x02\x03\x04"})
        with pytest.raises(SaveStateError):
            unpack_sections(blob[:-1])
        with pytest.raises(SaveStateError):
            unpack_sections(blob[:9])
        with pytest.raises(SaveStateError, match="Trailing"):
            unpack_sections(blob + b"\x00")

    def test_rejects_long_section_name(self):
        with pytest.raises(SaveStateError):
            pack_sections({"x" * 256: b""})
