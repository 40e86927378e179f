"""
방화벽 자동 설정 모듈
UFW 기반 (Debian/Ubuntu)
"""

from typing import Tuple
from rich.console import Console

from .config import SecurityConfig
from .logger import get_logger
from .system import SystemInterface

console = Console()


class FirewallManager:
    """방화벽 관리 클래스"""

    def __init__(self, system: SystemInterface, config: SecurityConfig, debug: bool = False):
        self.system = system
        self.config = config
        self.debug = debug
        self.logger = get_logger()
        self.enabled = config.firewall_enabled
        self.ssh_port = config.ssh_port
        self.allowed_ports = config.allowed_ports

    def is_active(self) -> bool:
        """UFW 활성화 여부"""
        result = self.system.run(["ufw", "status"])
        return result.ok and "Status: active" in result.stdout

    def configure(self) -> Tuple[bool, str]:
        """방화벽 자동 설정"""
        if not self.enabled:
            console.print("[cyan]방화벽 설정을 건너뜁니다.[/cyan]")
            self.logger.info("Firewall configuration skipped")
            return True, "건너뜀"

        console.print("[cyan]UFW 방화벽 규칙 추가 중...[/cyan]")
        self.logger.info("Configuring UFW...")

        if not self.system.command_exists("ufw"):
            self.logger.info("Installing ufw...")
            result = self.system.apt_install(["ufw"])
            if not result.ok:
                return False, f"ufw 설치 실패: {result.stderr.strip()}"

        self.system.run_checked(["ufw", "default", "deny", "incoming"])
        self.system.run_checked(["ufw", "default", "allow", "outgoing"])

        # SSH 를 먼저 허용해야 활성화 시 접속이 끊기지 않는다
        rules = [(f"{self.ssh_port}/tcp", "SSH")]
        rules.extend((port_spec, "Additional port") for port_spec in self.allowed_ports)

        for port_spec, description in rules:
            self.system.run_checked(["ufw", "allow", str(port_spec)])
            console.print(f"  ✓ {port_spec} - {description}")
            self.logger.debug(f"Added UFW rule: {port_spec}")

        self.system.run_checked(["ufw", "--force", "enable"])

        if not self.is_active():
            return False, "UFW 가 활성화되지 않았습니다"

        console.print("\n[green]✓ UFW 방화벽 설정 완료[/green]")
        self.logger.info("UFW configuration completed")
        return True, "UFW 설정 완료"
