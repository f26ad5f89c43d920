import logging

from retro_gb_core.system.machine import Machine
from retro_gb_core.cartridge.loader import load_cartridge_file
from .models import SystemConfig, CpuInitialState

logger = logging.getLogger(__name__)

# @intent:responsibility システム構成（Config）に基づいて、Machineを生成し、カートリッジの装着と初期状態の適用を行います。
class SystemBuilder:
    def build_system(self, config: SystemConfig) -> Machine:
        logging.getLogger("retro_gb_core").setLevel(config.log_level)

        machine = Machine(strict_addressing=config.strict_addressing)
        if config.cartridge:
            machine.power_on(load_cartridge_file(config.cartridge))
        else:
            logger.warning("No cartridge configured; ROM window reads as open bus")
            machine.reset()

        self.apply_initial_state(machine, config.initial_state)
        if config.symbols:
            machine.cpu.set_symbol_map(config.symbols)
        return machine

    # @intent:responsibility Configで定義された初期状態を、電源投入後のCPUに上書き適用します。
    def apply_initial_state(self, machine: Machine, config_state: CpuInitialState) -> None:
        state = machine.state
        if config_state.pc is not None:
            state.pc = config_state.pc & 0xFFFF
        if config_state.sp is not None:
            state.sp = config_state.sp & 0xFFFF
        for reg_name, value in config_state.registers.items():
            # 未知のレジスタ名はKeyError
            state.set_register(reg_name, value)
