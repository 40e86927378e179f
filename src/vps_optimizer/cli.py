"""
CLI 메인 인터페이스
Click 및 Rich 기반 사용자 친화적 CLI
"""

import os
import sys
import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import Config
from .engine import ExitCode, ProvisioningEngine
from .exceptions import InsufficientDiskError
from .logger import init_logger
from .probe import probe as probe_system
from .reporter import Reporter
from .system import HostSystem

console = Console()

FALLBACK_LOG_FILE = "~/.vps-optimizer/server-optimization.log"


def _setup_logging(cfg: Config, debug: bool):
    """로거 초기화 (기본 로그 경로에 쓸 수 없으면 홈 디렉토리 사용)"""
    try:
        return init_logger(cfg.general.log_file, cfg.general.log_level, debug)
    except PermissionError:
        fallback = os.path.expanduser(FALLBACK_LOG_FILE)
        console.print(f"[yellow]⚠ {cfg.general.log_file} 에 쓸 수 없습니다. {fallback} 사용[/yellow]")
        return init_logger(fallback, cfg.general.log_level, debug)


def _require_root():
    if os.geteuid() != 0:
        console.print("[red]오류: 이 명령은 root 권한이 필요합니다.[/red]")
        console.print("[yellow]sudo vps-optimizer run 으로 실행해주세요.[/yellow]")
        sys.exit(ExitCode.FATAL)


@click.group()
@click.version_option(version=__version__)
def cli():
    """VPS Optimizer

    2 CPU / 2GB RAM VPS에 Docker, 스왑, 커널 튜닝을 적용하고 결과를 검증합니다.
    """
    pass


@cli.command()
@click.option('--config', '-c', type=click.Path(exists=True), help='설정 파일 경로')
@click.option('--debug', is_flag=True, help='디버그 모드')
@click.option('--enable-firewall', is_flag=True, help='UFW 방화벽 설정')
@click.option('--harden-ssh', is_flag=True, help='SSH 하드닝 및 fail2ban 설치')
@click.option('--skip-validation', is_flag=True, help='설치 후 검증 생략')
@click.option('--fail-exit-code', type=int, default=None,
              help='검증 실패(failed) 시 종료 코드 (기본값: 설정 파일, 2)')
def run(config, debug, enable_firewall, harden_ssh, skip_validation, fail_exit_code):
    """서버 최적화 실행"""
    _require_root()

    cfg = Config(config)
    if enable_firewall:
        cfg.security.firewall_enabled = True
    if harden_ssh:
        cfg.security.ssh_hardening = True
        cfg.security.fail2ban_enabled = True
    if fail_exit_code is not None:
        cfg.validation.fail_exit_code = fail_exit_code

    logger = _setup_logging(cfg, debug)
    logger.info(f"Starting run command (debug={debug}, config={cfg.config_path})")

    engine = ProvisioningEngine(cfg, HostSystem(debug), debug, skip_validation)
    try:
        code = engine.run()
    except KeyboardInterrupt:
        console.print("\n[yellow]사용자에 의해 중단되었습니다. 다시 실행하면 이어서 진행됩니다.[/yellow]")
        logger.warning("Execution interrupted by user")
        sys.exit(130)

    sys.exit(int(code))


@cli.command()
@click.option('--config', '-c', type=click.Path(exists=True), help='설정 파일 경로')
@click.option('--debug', is_flag=True, help='디버그 모드')
def validate(config, debug):
    """현재 시스템 상태만 검증"""
    cfg = Config(config)
    _setup_logging(cfg, debug)

    engine = ProvisioningEngine(cfg, HostSystem(debug), debug)
    report = engine.validate()
    sys.exit(int(engine.exit_code_for(report)))


@cli.command()
@click.option('--config', '-c', type=click.Path(exists=True), help='설정 파일 경로')
def probe(config):
    """시스템 사전 점검"""
    cfg = Config(config)
    _setup_logging(cfg, False)

    try:
        facts = probe_system(HostSystem(), cfg)
    except InsufficientDiskError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(ExitCode.FATAL)

    Reporter().show_facts(facts)
    console.print("[green]✓ 사전 점검 통과[/green]")


@cli.command()
@click.argument('output', type=click.Path(), default='./config.yaml')
def init(output):
    """샘플 설정 파일 생성"""
    cfg = Config()
    cfg.create_sample(output)
    console.print(f"[green]✓ 샘플 설정 파일 생성: {output}[/green]")
    console.print(f"[cyan]설정 파일을 편집한 후 다음 명령어로 실행하세요:[/cyan]")
    console.print(f"[cyan]  sudo vps-optimizer run --config {output}[/cyan]")


@cli.command(name="show-config")
@click.option('--config', '-c', type=click.Path(exists=True), help='설정 파일 경로')
def show_config(config):
    """적용될 설정 표시"""
    try:
        cfg = Config(config)
    except Exception as e:
        console.print(f"[red]✗ 설정 파일 오류: {str(e)}[/red]")
        sys.exit(ExitCode.FATAL)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("항목", style="cyan")
    table.add_column("값")

    table.add_row("설정 파일", cfg.config_path or "(기본값)")
    table.add_row("로그 파일", cfg.general.log_file)
    table.add_row("스왑 파일", f"{cfg.swap.swap_file} ({cfg.swap.swap_size_mb}MB)")
    table.add_row("zram", f"{cfg.zram.size_mb}MB, {cfg.zram.algorithm}, priority {cfg.zram.priority}")
    table.add_row("swappiness", str(cfg.kernel.parameters.get("vm.swappiness", "-")))
    table.add_row("방화벽", "예" if cfg.security.firewall_enabled else "아니오")
    table.add_row("SSH 하드닝", "예" if cfg.security.ssh_hardening else "아니오")
    table.add_row("fail2ban", "예" if cfg.security.fail2ban_enabled else "아니오")
    table.add_row(
        "검증 기준",
        f"full >= {cfg.validation.full_success_rate}%, degraded >= {cfg.validation.degraded_rate}%"
    )

    console.print(table)


def main():
    """메인 엔트리 포인트"""
    cli()


if __name__ == '__main__':
    main()
