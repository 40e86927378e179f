"""
zram 압축 스왑 설정 모듈

3단계 폴백 상태 머신:
    module-check -> service-attempt -> manual-attempt -> unavailable

각 단계는 이전 단계가 실패했을 때만 시도되며 절대 뒤로 돌아가지 않는다.
zram 은 선택적 최적화이므로 어떤 실패도 치명적 오류로 올리지 않는다.
"""

from enum import Enum
from typing import Callable, Dict, List
from rich.console import Console

from .config import ZramConfig
from .exceptions import ProvisioningError
from .logger import get_logger
from .system import SystemInterface
from .templates import ZRAMSWAP_TEMPLATE, render

console = Console()

ZRAMSWAP_CONFIG = "/etc/default/zramswap"
ZRAMSWAP_SERVICE = "zramswap"
ZRAM_DEVICE = "/dev/zram0"
ZRAM_SYSFS = "/sys/block/zram0"


class ZramState(Enum):
    """zram 최종 상태"""
    UNSET = "unset"
    SERVICE_MANAGED = "service-managed"
    MANUALLY_CONFIGURED = "manually-configured"
    UNAVAILABLE = "unavailable"


class ZramPhase(Enum):
    """폴백 체인 단계"""
    MODULE_CHECK = "module-check"
    SERVICE_ATTEMPT = "service-attempt"
    MANUAL_ATTEMPT = "manual-attempt"
    DONE = "done"


PHASE_ORDER = [
    ZramPhase.MODULE_CHECK,
    ZramPhase.SERVICE_ATTEMPT,
    ZramPhase.MANUAL_ATTEMPT,
    ZramPhase.DONE,
]


def zram_active(system: SystemInterface) -> bool:
    """활성 스왑 목록에 zram 장치가 있는지"""
    return any(dev.startswith("/dev/zram") for dev in system.active_swaps())


class ZramFallbackChain:
    """zram 폴백 체인"""

    def __init__(self, system: SystemInterface, config: ZramConfig):
        self.system = system
        self.config = config
        self.logger = get_logger()
        self.state = ZramState.UNSET
        self.phase = ZramPhase.MODULE_CHECK
        self.history: List[ZramPhase] = []
        self._transitions: Dict[ZramPhase, Callable[[], ZramPhase]] = {
            ZramPhase.MODULE_CHECK: self._module_check,
            ZramPhase.SERVICE_ATTEMPT: self._service_attempt,
            ZramPhase.MANUAL_ATTEMPT: self._manual_attempt,
        }

    def run(self) -> ZramState:
        """체인을 끝까지 실행하고 최종 상태 반환"""
        console.print("[cyan]zram 압축 스왑 설정 중...[/cyan]")
        self.logger.info("Setting up zram compressed swap...")

        while self.phase is not ZramPhase.DONE:
            self.history.append(self.phase)
            try:
                next_phase = self._transitions[self.phase]()
            except (ProvisioningError, OSError) as e:
                next_phase = self._on_error(e)
            self._advance(next_phase)

        if self.state is ZramState.UNAVAILABLE:
            console.print("[yellow]⚠ zram 을 사용할 수 없습니다 (스왑 파일만 사용)[/yellow]")
            self.logger.warning("zram unavailable, relying on swap file only")
        else:
            console.print(f"[green]✓ zram 설정 완료: {self.state.value}[/green]")
            self.logger.info(f"zram configured: {self.state.value}")
        return self.state

    def _advance(self, next_phase: ZramPhase):
        if PHASE_ORDER.index(next_phase) <= PHASE_ORDER.index(self.phase):
            raise RuntimeError(
                f"zram chain cannot move from {self.phase.value} back to {next_phase.value}"
            )
        self.logger.debug(f"zram phase: {self.phase.value} -> {next_phase.value}")
        self.phase = next_phase

    def _on_error(self, error: Exception) -> ZramPhase:
        """단계 내부 오류 발생 시 다음 단계로 진행"""
        self.logger.warning(f"zram {self.phase.value} failed: {error}")
        if self.phase is ZramPhase.MODULE_CHECK:
            return self._finish(ZramState.UNAVAILABLE)
        if self.phase is ZramPhase.SERVICE_ATTEMPT:
            return ZramPhase.MANUAL_ATTEMPT
        return self._finish(ZramState.UNAVAILABLE)

    def _finish(self, state: ZramState) -> ZramPhase:
        self.state = state
        return ZramPhase.DONE

    def _load_module(self, *params: str) -> bool:
        return self.system.run(["modprobe", "zram", *params]).ok

    def _module_check(self) -> ZramPhase:
        if self._load_module():
            self.logger.debug("zram kernel module loaded")
            return ZramPhase.SERVICE_ATTEMPT

        package = f"linux-modules-extra-{self.system.kernel_release()}"
        self.logger.info(f"zram module not available, installing {package}...")
        result = self.system.apt_install([package])
        if not result.ok:
            self.logger.warning(f"Failed to install {package}: {result.stderr.strip()}")
        elif self._load_module():
            self.logger.info("zram module loaded after installing extra modules")
            return ZramPhase.SERVICE_ATTEMPT

        self.logger.warning("zram kernel module unavailable")
        return self._finish(ZramState.UNAVAILABLE)

    def _service_attempt(self) -> ZramPhase:
        result = self.system.apt_install(["zram-tools"])
        if not result.ok:
            self.logger.warning(f"Failed to install zram-tools: {result.stderr.strip()}")
            return ZramPhase.MANUAL_ATTEMPT

        content = render(
            ZRAMSWAP_TEMPLATE,
            algorithm=self.config.algorithm,
            size_mb=self.config.size_mb,
            percent=self.config.percent,
            priority=self.config.priority,
        )
        self.system.write_if_changed(ZRAMSWAP_CONFIG, content, 0o644)
        self.system.run_checked(["systemctl", "enable", ZRAMSWAP_SERVICE])
        self.system.run_checked(["systemctl", "restart", ZRAMSWAP_SERVICE])

        if self.system.service_is_active(ZRAMSWAP_SERVICE):
            return self._finish(ZramState.SERVICE_MANAGED)

        self.logger.warning("zramswap service is not active, trying manual setup")
        return ZramPhase.MANUAL_ATTEMPT

    def _manual_attempt(self) -> ZramPhase:
        if zram_active(self.system):
            self.logger.info("zram device already active")
            return self._finish(ZramState.MANUALLY_CONFIGURED)

        self.logger.info("Configuring zram device manually...")
        self.system.run(["swapoff", ZRAM_DEVICE])
        self.system.run(["modprobe", "-r", "zram"])
        if not self._load_module("num_devices=1"):
            self.logger.warning("Failed to reload zram module with one device")
            return self._finish(ZramState.UNAVAILABLE)

        self.system.write_file(f"{ZRAM_SYSFS}/comp_algorithm", self.config.algorithm)
        self.system.write_file(f"{ZRAM_SYSFS}/disksize", f"{self.config.size_mb}M")
        self.system.run_checked(["mkswap", ZRAM_DEVICE])
        self.system.run_checked(["swapon", "-p", str(self.config.priority), ZRAM_DEVICE])

        if ZRAM_DEVICE in self.system.active_swaps():
            return self._finish(ZramState.MANUALLY_CONFIGURED)
        return self._finish(ZramState.UNAVAILABLE)
