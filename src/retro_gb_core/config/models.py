from dataclasses import dataclass, field
from typing import Dict, Optional

@dataclass
class CpuInitialState:
    pc: Optional[int] = None # Noneならブート後の値のまま
    sp: Optional[int] = None
    registers: Dict[str, int] = field(default_factory=dict)

@dataclass
class SystemConfig:
    cartridge: Optional[str] = None # YAMLファイルからの相対パスは解決済み
    strict_addressing: bool = False
    log_level: str = "WARNING"
    initial_state: CpuInitialState = field(default_factory=CpuInitialState)
    symbols: Dict[str, int] = field(default_factory=dict)
