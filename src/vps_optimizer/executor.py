"""
단계 실행 모듈
선언된 순서대로 프로비저닝 단계를 실행하고 critical / best-effort 정책을 적용한다.
"""

from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple
from rich.console import Console

from .exceptions import CriticalStepError, ProvisioningError
from .logger import get_logger

console = Console()

StepAction = Callable[[], Tuple[bool, str]]


@dataclass(frozen=True)
class ProvisioningStep:
    """프로비저닝 단계 정의"""
    name: str
    action: StepAction
    critical: bool = False
    description: str = ""


@dataclass
class StepResult:
    """단계 실행 결과 (요약 출력용)"""
    step: str
    status: str
    message: str = ""
    critical: bool = False

    @property
    def success(self) -> bool:
        return self.status == "success"


class StepExecutor:
    """단계 실행기

    결과를 캐시하거나 재시도하지 않는다. idempotence 는 각 단계가
    스스로 기존 상태를 확인하여 보장한다.
    """

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.logger = get_logger()
        self.results: List[StepResult] = []

    def run(self, steps: Sequence[ProvisioningStep]) -> List[StepResult]:
        """모든 단계를 순서대로 실행

        Raises:
            CriticalStepError: critical 단계가 실패한 경우 (이후 단계는 실행하지 않음)
        """
        self.results = []
        total = len(steps)
        for index, step in enumerate(steps, 1):
            label = step.description or step.name
            console.print(f"\n[bold cyan][{index}/{total}] {label}[/bold cyan]")
            self.logger.info(f"Step {index}/{total}: {step.name}")

            success, message = self._execute(step)
            status = "success" if success else "failed"
            self.results.append(StepResult(step.name, status, message, step.critical))

            if success:
                self.logger.info(f"Step '{step.name}' completed: {message}")
                continue

            if step.critical:
                self.logger.error(f"Critical step '{step.name}' failed: {message}")
                raise CriticalStepError(step.name, message)

            self.logger.warning(f"Best-effort step '{step.name}' failed, continuing: {message}")

        return self.results

    def _execute(self, step: ProvisioningStep) -> Tuple[bool, str]:
        try:
            return step.action()
        except (ProvisioningError, OSError) as e:
            self.logger.debug(f"Step '{step.name}' raised {type(e).__name__}")
            return False, str(e)
