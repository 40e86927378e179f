"""
프로비저닝 엔진
사전 점검 -> 단계 실행 -> 검증 -> 리포트
"""

from enum import IntEnum
from typing import List, Optional
from rich.console import Console

from . import __version__
from .config import Config
from .exceptions import CriticalStepError, InsufficientDiskError
from .executor import StepExecutor, StepResult
from .logger import get_logger
from .probe import SystemFacts, probe
from .reporter import Reporter
from .steps import ServerProvisioner
from .system import HostSystem, SystemInterface
from .validator import RunReport, Validator, Verdict

console = Console()


class ExitCode(IntEnum):
    SUCCESS = 0
    FATAL = 1
    VALIDATION_FAILED = 2


class ProvisioningEngine:
    """프로비저닝 엔진"""

    def __init__(self, config: Config, system: Optional[SystemInterface] = None,
                 debug: bool = False, skip_validation: bool = False):
        self.config = config
        self.debug = debug
        self.skip_validation = skip_validation
        self.system = system or HostSystem(debug)
        self.logger = get_logger()
        self.reporter = Reporter()
        self.provisioner = ServerProvisioner(self.system, config, debug)
        self.facts: Optional[SystemFacts] = None
        self.step_results: List[StepResult] = []
        self.report: Optional[RunReport] = None

    def run(self) -> int:
        """전체 실행, 프로세스 종료 코드 반환"""
        self.reporter.show_banner(__version__)
        self.logger.section(f"VPS Server Optimization v{__version__}")
        self.logger.info("Target: 2 CPU cores / 2GB RAM with Docker optimization")

        try:
            self.facts = probe(self.system, self.config)
        except InsufficientDiskError as e:
            console.print(f"\n[bold red]✗ {e}[/bold red]")
            self.logger.critical(f"Aborting before any change: {e}")
            return ExitCode.FATAL
        self.reporter.show_facts(self.facts)

        executor = StepExecutor(self.debug)
        try:
            executor.run(self.provisioner.build_steps())
        except CriticalStepError as e:
            self.step_results = executor.results
            self.reporter.show_steps(self.step_results)
            console.print(f"\n[bold red]✗ {e}[/bold red]")
            console.print("[yellow]모든 단계는 idempotent 합니다. 원인을 해결한 후 다시 실행하세요.[/yellow]")
            self.logger.error(f"Run aborted at step '{e.step}'")
            return ExitCode.FATAL

        self.step_results = executor.results
        self.reporter.show_steps(self.step_results)

        if self.skip_validation:
            self.logger.info("Validation skipped")
            return ExitCode.SUCCESS

        self.logger.info("Running installation validation...")
        self.report = self.validate()
        self.logger.info("Server optimization completed")
        return self.exit_code_for(self.report)

    def validate(self) -> RunReport:
        """현재 시스템 상태 검증 및 출력"""
        report = Validator(self.system, self.config).validate()
        self.reporter.show_report(report)
        return report

    def exit_code_for(self, report: RunReport) -> int:
        """검증 판정 -> 종료 코드 (failed 는 설정값, 나머지는 0)"""
        if report.verdict is Verdict.FAILED:
            return self.config.validation.fail_exit_code
        return ExitCode.SUCCESS
