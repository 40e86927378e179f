"""
결과 출력 모듈
단계 요약 테이블, 검증 결과 테이블, 최종 배너
"""

import math
from typing import List
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .executor import StepResult
from .logger import get_logger
from .probe import SystemFacts
from .validator import RunReport, Verdict

console = Console()

VERDICT_STYLE = {
    Verdict.FULL_SUCCESS: ("green", "🎉 VALIDATION RESULT: SUCCESS"),
    Verdict.DEGRADED: ("yellow", "⚠️  VALIDATION RESULT: MOSTLY SUCCESS"),
    Verdict.FAILED: ("red", "💥 VALIDATION RESULT: FAILED"),
}


def format_rate(rate: float) -> str:
    """성공률 표시 (소수 첫째 자리에서 내림, 79.96 이 80.0 으로 보이지 않도록)"""
    return f"{math.floor(round(rate * 10, 6)) / 10:.1f}%"


class Reporter:
    """사람이 읽는 상태 출력 (판단 로직 없음)"""

    def __init__(self):
        self.logger = get_logger()

    def show_banner(self, version: str):
        console.print(Panel.fit(
            f"[bold cyan]VPS Optimizer v{version}[/bold cyan]\n"
            "2 CPU / 2GB RAM 서버를 Docker 워크로드용으로 최적화합니다.",
            border_style="cyan"
        ))

    def show_facts(self, facts: SystemFacts):
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("항목", style="cyan")
        table.add_column("값")

        table.add_row("메모리", f"{facts.memory_mb} MB")
        table.add_row("CPU 코어", str(facts.cpu_cores))
        table.add_row("디스크 여유", f"{facts.disk_free_mb} MB")
        table.add_row("스왑 파일 필요 공간", f"{facts.required_disk_mb} MB")

        console.print(table)

    def show_steps(self, results: List[StepResult]):
        """실행 결과 요약 표시"""
        console.print("\n" + "=" * 60)
        console.print("[bold]실행 결과 요약[/bold]")
        console.print("=" * 60 + "\n")

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("단계", style="cyan", width=28)
        table.add_column("구분", width=10)
        table.add_column("상태", width=6)
        table.add_column("메시지")

        for result in results:
            status_icon = "✓" if result.success else "✗"
            if result.success:
                status_color = "green"
            else:
                status_color = "red" if result.critical else "yellow"
            table.add_row(
                result.step,
                "critical" if result.critical else "best-effort",
                f"[{status_color}]{status_icon}[/{status_color}]",
                result.message[:60] if result.message else ""
            )

        console.print(table)

    def show_report(self, report: RunReport):
        """검증 결과 및 최종 배너"""
        table = Table(title="검증 결과", show_header=True, header_style="bold magenta")
        table.add_column("항목", style="cyan")
        table.add_column("상태", width=6)
        table.add_column("메시지")

        for outcome in report.outcomes:
            if outcome.passed:
                icon = "[green]✅[/green]"
            elif outcome.is_warning:
                icon = "[yellow]⚠️[/yellow]"
            else:
                icon = "[red]❌[/red]"
            table.add_row(outcome.name, icon, outcome.message)

        console.print(table)

        rate = report.success_rate
        self.logger.section("VALIDATION SUMMARY")
        self.logger.info(f"Total checks: {report.total}")
        self.logger.info(f"Passed: {report.passed}")
        self.logger.info(f"Failed: {report.failed} (warnings: {report.warnings})")

        color, title = VERDICT_STYLE[report.verdict]
        headline = f"{title} ({format_rate(rate)})"
        if report.verdict is Verdict.FULL_SUCCESS:
            self.logger.info(headline)
            detail = "모든 구성요소가 정상적으로 설치/설정되었습니다."
        elif report.verdict is Verdict.DEGRADED:
            self.logger.warning(headline)
            self.logger.warning(f"Most components working, but {report.failed} issues detected")
            detail = "대부분 정상 동작합니다. 경고 항목을 확인하세요."
        else:
            self.logger.error(headline)
            self.logger.error("Multiple critical components failed validation")
            detail = "여러 핵심 구성요소가 검증에 실패했습니다. 로그를 확인하세요."

        console.print(Panel.fit(
            f"[bold {color}]{headline}[/bold {color}]\n"
            f"통과 {report.passed} / 전체 {report.total} (경고 {report.warnings})\n"
            f"{detail}",
            border_style=color
        ))

        if any(o.is_warning and o.name == "zram" for o in report.outcomes):
            console.print("[dim]zram 은 재부팅 후 활성화될 수 있습니다: sudo reboot[/dim]")

        log_files = self.logger.get_log_files()
        console.print(f"\n[bold]로그 파일:[/bold] {log_files['main_log']}")
