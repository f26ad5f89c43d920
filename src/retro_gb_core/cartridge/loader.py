# retro_gb_core/cartridge/loader.py
"""
カートリッジローダー。
ROMイメージのヘッダを解析し、対応するバンクコントローラを選択して生成します。
"""
import logging
from typing import Dict, Type

from retro_gb_core.core.errors import CartridgeError
from retro_gb_core.cartridge.header import CartridgeHeader
from retro_gb_core.cartridge.controllers import Cartridge, RomOnly, Mbc1, Mbc2, Mbc3, Mbc5

logger = logging.getLogger(__name__)

# カートリッジ種別コード(0x0147) -> コントローラクラス
CONTROLLERS: Dict[int, Type[Cartridge]] = {
    0x00: RomOnly, 0x08: RomOnly, 0x09: RomOnly,
    0x01: Mbc1, 0x02: Mbc1, 0x03: Mbc1,
    0x05: Mbc2, 0x06: Mbc2,
    0x0F: Mbc3, 0x10: Mbc3, 0x11: Mbc3, 0x12: Mbc3, 0x13: Mbc3,
    0x19: Mbc5, 0x1A: Mbc5, 0x1B: Mbc5, 0x1C: Mbc5, 0x1D: Mbc5, 0x1E: Mbc5,
}


# @intent:responsibility ROMイメージからカートリッジを生成します。
# @intent:post-condition 未対応のコントローラ種別の場合はCartridgeErrorを発生させます。
def load_cartridge(data: bytes) -> Cartridge:
    header = CartridgeHeader.parse(data)
    if not header.checksum_valid:
        logger.warning(
            "Header checksum mismatch for '%s': expected %#04x, computed %#04x",
            header.title, header.header_checksum, header.computed_checksum
        )
    if len(data) < header.rom_size:
        logger.warning("ROM image is %d bytes, header declares %d bytes", len(data), header.rom_size)

    controller = CONTROLLERS.get(header.mbc_type)
    if controller is None:
        raise CartridgeError(f"Unsupported cartridge type {header.mbc_type:#04x}.")

    cartridge = controller(data, header)
    logger.info("Loaded cartridge '%s' (%s, %d ROM banks, %d bytes RAM)",
                header.title, controller.__name__, cartridge.rom_bank_count, header.ram_size)
    return cartridge


def load_cartridge_file(path: str) -> Cartridge:
    with open(path, "rb") as f:
        data = f.read()
    return load_cartridge(data)
