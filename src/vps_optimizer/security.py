"""
SSH 하드닝 및 fail2ban 설정 모듈
"""

from typing import Tuple
from rich.console import Console

from .config import SecurityConfig
from .logger import get_logger
from .system import SystemInterface
from .templates import JAIL_LOCAL_TEMPLATE, SSHD_HARDENING_TEMPLATE, render

console = Console()

SSHD_DROPIN = "/etc/ssh/sshd_config.d/99-hardening.conf"
AUTHORIZED_KEYS = "/root/.ssh/authorized_keys"
JAIL_LOCAL = "/etc/fail2ban/jail.local"


class SecurityManager:
    """SSH / fail2ban 관리 클래스"""

    def __init__(self, system: SystemInterface, config: SecurityConfig, debug: bool = False):
        self.system = system
        self.config = config
        self.debug = debug
        self.logger = get_logger()

    def harden_ssh(self) -> Tuple[bool, str]:
        """sshd 드롭인 설정 (비밀번호 로그인 차단)"""
        authorized = self.system.read_file(AUTHORIZED_KEYS) or ""
        if not authorized.strip():
            self.logger.warning(f"No keys in {AUTHORIZED_KEYS}, refusing to disable password login")
            return False, "authorized_keys 없음"

        content = render(SSHD_HARDENING_TEMPLATE, ssh_port=self.config.ssh_port)
        changed = self.system.write_if_changed(SSHD_DROPIN, content, 0o644)

        check = self.system.run(["sshd", "-t"])
        if not check.ok:
            self.system.remove_file(SSHD_DROPIN)
            self.logger.error(f"sshd rejected hardening config: {check.stderr.strip()}")
            return False, "sshd 설정 검증 실패"

        if changed:
            self.system.run_checked(["systemctl", "reload", "ssh"])
            self.logger.info(f"SSH hardening applied: {SSHD_DROPIN}")

        console.print("[green]✓ SSH 하드닝 완료[/green]")
        return True, "적용 완료"

    def install_fail2ban(self) -> Tuple[bool, str]:
        """fail2ban 설치 및 sshd jail 설정"""
        result = self.system.apt_install(["fail2ban"])
        if not result.ok:
            return False, f"fail2ban 설치 실패: {result.stderr.strip()}"

        content = render(
            JAIL_LOCAL_TEMPLATE,
            bantime=self.config.fail2ban_bantime,
            maxretry=self.config.fail2ban_maxretry,
            ssh_port=self.config.ssh_port,
        )
        self.system.write_if_changed(JAIL_LOCAL, content, 0o644)
        self.system.run_checked(["systemctl", "enable", "fail2ban"])
        self.system.run_checked(["systemctl", "restart", "fail2ban"])

        if not self.system.service_is_active("fail2ban"):
            return False, "fail2ban 서비스가 실행되지 않음"

        console.print("[green]✓ fail2ban 설정 완료[/green]")
        self.logger.info("fail2ban configured")
        return True, "설정 완료"
