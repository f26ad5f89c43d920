# retro_gb_core/cartridge/header.py
"""
カートリッジヘッダ (0x0100-0x014F) の解析。

ロード時に一度だけ読み取り、バンクコントローラの種別とROM/RAMの容量を決定します。
"""
from dataclasses import dataclass

from retro_gb_core.core.errors import CartridgeError

HEADER_END = 0x0150

TITLE_START = 0x0134
TITLE_END = 0x0144
CGB_FLAG = 0x0143
CARTRIDGE_TYPE = 0x0147
ROM_SIZE = 0x0148
RAM_SIZE = 0x0149
HEADER_CHECKSUM = 0x014D
GLOBAL_CHECKSUM = 0x014E

ROM_BANK_SIZE = 0x4000
RAM_BANK_SIZE = 0x2000

# RAMサイズコード -> バイト数
RAM_SIZES = {
    0x00: 0,
    0x01: 0x800,
    0x02: 0x2000,
    0x03: 0x8000,
    0x04: 0x20000,
    0x05: 0x10000,
}


# @intent:utility_function 0x0134-0x014Cのバイト列からヘッダチェックサムを計算します。
def compute_header_checksum(data: bytes) -> int:
    checksum = 0
    for value in data[TITLE_START:HEADER_CHECKSUM]:
        checksum = (checksum - value - 1) & 0xFF
    return checksum


# @intent:responsibility カートリッジヘッダの解析結果を保持します。
@dataclass(frozen=True)
class CartridgeHeader:
    title: str
    cgb_flag: int
    mbc_type: int
    rom_size: int # バイト数
    ram_size: int # バイト数
    header_checksum: int
    computed_checksum: int
    global_checksum: int = 0

    @property
    def checksum_valid(self) -> bool:
        return self.header_checksum == self.computed_checksum

    @property
    def rom_banks(self) -> int:
        return max(2, self.rom_size // ROM_BANK_SIZE)

    # @intent:responsibility ROMイメージからヘッダを解析します。
    # @intent:pre-condition dataは少なくとも0x0150バイトの長さが必要です。
    @classmethod
    def parse(cls, data: bytes) -> "CartridgeHeader":
        if len(data) < HEADER_END:
            raise CartridgeError(f"ROM image too small for a cartridge header ({len(data)} bytes).")

        cgb_flag = data[CGB_FLAG]
        # CGB対応カートリッジではタイトル末尾のバイトがCGBフラグになる
        title_end = CGB_FLAG if cgb_flag & 0x80 else TITLE_END
        raw_title = bytes(data[TITLE_START:title_end]).split(b"\x00", 1)[0]
        title = raw_title.decode("ascii", errors="replace").strip()

        rom_code = data[ROM_SIZE]
        if rom_code > 0x08:
            raise CartridgeError(f"Unsupported ROM size code {rom_code:#04x}.")
        ram_code = data[RAM_SIZE]
        if ram_code not in RAM_SIZES:
            raise CartridgeError(f"Unsupported RAM size code {ram_code:#04x}.")

        return cls(
            title=title,
            cgb_flag=cgb_flag,
            mbc_type=data[CARTRIDGE_TYPE],
            rom_size=0x8000 << rom_code,
            ram_size=RAM_SIZES[ram_code],
            header_checksum=data[HEADER_CHECKSUM],
            computed_checksum=compute_header_checksum(data),
            global_checksum=(data[GLOBAL_CHECKSUM] << 8) | data[GLOBAL_CHECKSUM + 1],
        )
