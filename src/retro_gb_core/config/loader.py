import os
from typing import Dict, Any, Optional

import yaml

from .models import SystemConfig, CpuInitialState

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# @intent:responsibility YAML形式のシステム構成ファイルを読み込み、SystemConfigに変換します。
class ConfigLoader:
    def load_from_file(self, path: str) -> SystemConfig:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
        return self._parse_config(data or {}, base_dir=os.path.dirname(os.path.abspath(path)))

    def _parse_config(self, data: Dict[str, Any], base_dir: Optional[str] = None) -> SystemConfig:
        if not isinstance(data, dict):
            raise ValueError("System configuration must be a mapping.")

        # カートリッジのパスはYAMLファイルの位置を基準に解決する
        cartridge = data.get("cartridge")
        if cartridge is not None:
            cartridge = str(cartridge)
            if base_dir and not os.path.isabs(cartridge):
                cartridge = os.path.join(base_dir, cartridge)

        log_level = str(data.get("log_level", "WARNING")).upper()
        if log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {log_level}")

        # Parse Initial State
        initial_state_data = data.get("initial_state") or {}
        registers = {
            str(name).lower(): self._parse_int(value)
            for name, value in (initial_state_data.get("registers") or {}).items()
        }
        initial_state = CpuInitialState(
            pc=self._parse_optional_int(initial_state_data.get("pc")),
            sp=self._parse_optional_int(initial_state_data.get("sp")),
            registers=registers
        )

        symbols = {
            str(name): self._parse_int(address)
            for name, address in (data.get("symbols") or {}).items()
        }

        return SystemConfig(
            cartridge=cartridge,
            strict_addressing=self._parse_bool(data.get("strict_addressing", False)),
            log_level=log_level,
            initial_state=initial_state,
            symbols=symbols
        )

    def _parse_bool(self, value: Any) -> bool:
        # YAMLの真偽値のみ受け付け、文字列 "false" などは拒否する
        if not isinstance(value, bool):
            raise ValueError(f"Invalid boolean format: {value}")
        return value

    def _parse_optional_int(self, value: Any) -> Optional[int]:
        if value is None:
            return None
        return self._parse_int(value)

    def _parse_int(self, value: Any) -> int:
        if isinstance(value, bool):
            raise ValueError(f"Invalid integer format: {value}")
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            if value.lower().startswith("0x"):
                return int(value, 16)
            if value.startswith("$"):
                return int(value[1:], 16)
            return int(value)
        raise ValueError(f"Invalid integer format: {value}")
