"""
프로비저닝 단계 모듈
각 단계는 idempotent: 기존 상태를 먼저 확인하고 건너뛰거나 맞춰준다.
"""

import os
from typing import List, Optional, Tuple
from rich.console import Console

from .config import Config
from .executor import ProvisioningStep
from .firewall import FirewallManager
from .logger import get_logger
from .security import SecurityManager
from .system import SystemInterface
from .templates import (
    CHECK_RESOURCES_TEMPLATE,
    COMPOSE_TEMPLATE,
    DOCKER_STATUS_TEMPLATE,
    ENV_EXAMPLE_TEMPLATE,
    JOURNALD_TEMPLATE,
    LOGROTATE_TEMPLATE,
    SYSCTL_TEMPLATE,
    TEMPLATE_README,
    render,
    render_daemon_json,
)
from .zram import ZramFallbackChain, ZramState

console = Console()

BASE_PACKAGES = ["curl", "ca-certificates", "gnupg", "htop", "logrotate"]

DOCKER_DAEMON_CONFIG = "/etc/docker/daemon.json"
DOCKER_INSTALL_SCRIPT = "/tmp/get-docker.sh"
COMPOSE_BINARY = "/usr/local/bin/docker-compose"
SYSCTL_CONFIG = "/etc/sysctl.d/99-server-optimization.conf"
JOURNALD_CONFIG = "/etc/systemd/journald.conf.d/99-server-optimization.conf"
LOGROTATE_CONFIG = "/etc/logrotate.d/vps-optimizer"
FSTAB = "/etc/fstab"

MONITORING_SCRIPTS = {
    "check-resources.sh": CHECK_RESOURCES_TEMPLATE,
    "docker-status.sh": DOCKER_STATUS_TEMPLATE,
}

COMPOSE_TEMPLATE_FILE = "docker-compose.yml"

# platform.machine() -> docker compose 릴리스 아키텍처
COMPOSE_ARCH = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
    "armv7l": "armv7",
    "armv6l": "armv6",
}


def fstab_has_entry(content: str, path: str) -> bool:
    """fstab 에 path 항목이 있는지 (주석 제외)"""
    for line in content.splitlines():
        fields = line.split()
        if fields and not fields[0].startswith("#") and fields[0] == path:
            return True
    return False


def parse_sysctl_conf(content: str) -> dict:
    """sysctl 설정 파일 파싱 ("key = value" 또는 "key=value")"""
    params = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith(("#", ";")) or "=" not in line:
            continue
        key, _, value = line.partition("=")
        params[key.strip()] = value.strip()
    return params


class ServerProvisioner:
    """서버 프로비저닝 단계 모음"""

    def __init__(self, system: SystemInterface, config: Config, debug: bool = False):
        self.system = system
        self.config = config
        self.debug = debug
        self.logger = get_logger()
        self.firewall = FirewallManager(system, config.security, debug)
        self.security = SecurityManager(system, config.security, debug)
        self.zram_state = ZramState.UNSET

    def build_steps(self) -> List[ProvisioningStep]:
        """실행 순서대로 단계 목록 생성"""
        steps = [
            ProvisioningStep("update_system", self.update_system, False, "시스템 패키지 업데이트"),
            ProvisioningStep("install_docker", self.install_docker, True, "Docker Engine 설치"),
            ProvisioningStep("install_compose", self.install_compose, True, "Docker Compose 설치"),
            ProvisioningStep("setup_zram", self.setup_zram, False, "zram 압축 스왑 설정"),
            ProvisioningStep("setup_swap_file", self.setup_swap_file, True, "스왑 파일 설정"),
            ProvisioningStep("optimize_kernel", self.optimize_kernel, False, "커널 파라미터 최적화"),
            ProvisioningStep("disable_services", self.disable_services, False, "불필요한 서비스 비활성화"),
            ProvisioningStep("setup_log_rotation", self.setup_log_rotation, False, "로그 로테이션 설정"),
            ProvisioningStep("create_monitoring_tools", self.create_monitoring_tools, False, "모니터링 스크립트 생성"),
            ProvisioningStep("create_compose_template", self.create_compose_template, False, "Docker Compose 템플릿 생성"),
        ]

        if self.config.security.firewall_enabled:
            steps.append(ProvisioningStep("configure_firewall", self.firewall.configure, False, "방화벽 설정"))
        if self.config.security.ssh_hardening:
            steps.append(ProvisioningStep("harden_ssh", self.security.harden_ssh, False, "SSH 하드닝"))
        if self.config.security.fail2ban_enabled:
            steps.append(ProvisioningStep("install_fail2ban", self.security.install_fail2ban, False, "fail2ban 설치"))

        return steps

    def update_system(self) -> Tuple[bool, str]:
        """패키지 인덱스 갱신 및 업그레이드"""
        self.logger.info("Updating package index...")
        self.system.run_checked(["apt-get", "update"])
        self.system.run_checked(["apt-get", "upgrade", "-y"])

        result = self.system.apt_install(BASE_PACKAGES)
        if not result.ok:
            return False, f"base packages: {result.stderr.strip()}"

        console.print("[green]✓ 시스템 업데이트 완료[/green]")
        return True, "업데이트 완료"

    def install_docker(self) -> Tuple[bool, str]:
        """Docker Engine 설치 및 daemon.json 적용"""
        if self.system.command_exists("docker"):
            console.print("[green]✓ Docker 가 이미 설치되어 있습니다.[/green]")
            self.logger.info("Docker already installed, skipping installation")
        else:
            console.print("[cyan]Docker 설치 스크립트 실행 중...[/cyan]")
            self.logger.info("Installing Docker Engine...")
            self.system.download(self.config.docker.install_script_url, DOCKER_INSTALL_SCRIPT, 0o755)
            self.system.run_checked(["sh", DOCKER_INSTALL_SCRIPT])
            self.system.remove_file(DOCKER_INSTALL_SCRIPT)
            if not self.system.command_exists("docker"):
                return False, "docker binary not found after installation"

        daemon_config = render_daemon_json(
            self.config.docker.log_max_size, self.config.docker.log_max_file
        )
        changed = self.system.write_if_changed(DOCKER_DAEMON_CONFIG, daemon_config, 0o644)
        self.system.run_checked(["systemctl", "enable", "docker"])
        self.system.run_checked(["systemctl", "restart" if changed else "start", "docker"])

        if changed:
            self.logger.info(f"Docker daemon configuration updated: {DOCKER_DAEMON_CONFIG}")
        console.print("[green]✓ Docker 준비 완료[/green]")
        return True, "설치 완료"

    def _compose_url(self) -> str:
        machine = self.system.machine()
        arch = COMPOSE_ARCH.get(machine, machine)
        return self.config.docker.compose_url.format(
            version=self.config.docker.compose_version, arch=arch
        )

    def install_compose(self) -> Tuple[bool, str]:
        """Docker Compose 바이너리 설치"""
        if self.system.command_exists("docker-compose"):
            console.print("[green]✓ Docker Compose 가 이미 설치되어 있습니다.[/green]")
            self.logger.info("Docker Compose already installed, skipping installation")
            return True, "이미 설치됨"

        url = self._compose_url()
        console.print(f"[cyan]Docker Compose {self.config.docker.compose_version} 다운로드 중...[/cyan]")
        self.logger.info(f"Installing Docker Compose from {url}")
        self.system.download(url, COMPOSE_BINARY, 0o755)

        result = self.system.run_checked([COMPOSE_BINARY, "--version"])
        version = result.stdout.strip().split('\n')[0]
        self.logger.info(f"Docker Compose installed: {version}")
        console.print(f"[green]✓ {version or 'Docker Compose'} 설치 완료[/green]")
        return True, "설치 완료"

    def setup_zram(self) -> Tuple[bool, str]:
        """zram 폴백 체인 실행 (실패해도 단계는 성공)"""
        chain = ZramFallbackChain(self.system, self.config.zram)
        self.zram_state = chain.run()
        return True, self.zram_state.value

    def _has_swap_signature(self, path: str) -> bool:
        result = self.system.run(["blkid", "-o", "value", "-s", "TYPE", path])
        return result.ok and result.stdout.strip() == "swap"

    def setup_swap_file(self) -> Tuple[bool, str]:
        """디스크 스왑 파일 생성, 활성화, fstab 등록"""
        path = self.config.swap.swap_file
        size_mb = self.config.swap.swap_size_mb
        size_bytes = size_mb * 1024 * 1024
        message = "이미 구성됨"

        current_size: Optional[int] = self.system.file_size(path) if self.system.exists(path) else None
        if current_size is None or current_size < size_bytes:
            if path in self.system.active_swaps():
                self.system.run_checked(["swapoff", path])
            console.print(f"[cyan]{size_mb}MB 스왑 파일 생성 중: {path}[/cyan]")
            self.logger.info(f"Creating {size_mb}MB swap file at {path}...")

            result = self.system.run(["fallocate", "-l", f"{size_mb}M", path])
            if not result.ok:
                self.logger.warning("fallocate failed, falling back to dd")
                self.system.run_checked(
                    ["dd", "if=/dev/zero", f"of={path}", "bs=1M", f"count={size_mb}"]
                )
            self.system.chmod(path, 0o600)
            self.system.run_checked(["mkswap", path])
            message = f"{size_mb}MB 생성"
        else:
            self.logger.info(f"Swap file {path} already exists")
            self.system.chmod(path, 0o600)
            # 할당 직후 중단된 실행은 크기만 맞고 스왑 서명이 없는 파일을 남긴다
            if path not in self.system.active_swaps() and not self._has_swap_signature(path):
                self.logger.warning(f"Swap file {path} has no swap signature, formatting")
                self.system.run_checked(["mkswap", path])
                message = "스왑 서명 복구"

        if path not in self.system.active_swaps():
            self.system.run_checked(["swapon", path])
            self.logger.info(f"Swap file {path} activated")

        fstab = self.system.read_file(FSTAB) or ""
        if not fstab_has_entry(fstab, path):
            if fstab and not fstab.endswith("\n"):
                fstab += "\n"
            self.system.write_file(FSTAB, fstab + f"{path} none swap sw 0 0\n")
            self.logger.info(f"Swap file registered in {FSTAB}")

        console.print("[green]✓ 스왑 파일 설정 완료[/green]")
        return True, message

    def optimize_kernel(self) -> Tuple[bool, str]:
        """sysctl 설정 파일 작성 및 적용"""
        content = render(SYSCTL_TEMPLATE, parameters=self.config.kernel.parameters)
        if self.system.write_if_changed(SYSCTL_CONFIG, content, 0o644):
            self.logger.info(f"Kernel parameters written to {SYSCTL_CONFIG}")
        self.system.run_checked(["sysctl", "--system"])
        console.print("[green]✓ 커널 파라미터 적용 완료[/green]")
        return True, f"{len(self.config.kernel.parameters)}개 적용"

    def disable_services(self) -> Tuple[bool, str]:
        """불필요한 서비스 비활성화"""
        disabled = []
        failed = []

        for service in self.config.services.disable:
            if not self.system.service_is_enabled(service):
                self.logger.debug(f"Service {service} not enabled, skipping")
                continue

            result = self.system.run(["systemctl", "disable", "--now", service])
            if result.ok:
                console.print(f"  ✓ {service} 비활성화")
                self.logger.info(f"Disabled service: {service}")
                disabled.append(service)
            else:
                self.logger.warning(f"Could not disable {service}: {result.stderr.strip()}")
                failed.append(service)

        if failed:
            return False, f"비활성화 실패: {', '.join(failed)}"
        return True, f"{len(disabled)}개 비활성화"

    def setup_log_rotation(self) -> Tuple[bool, str]:
        """journald 용량 제한 및 logrotate 설정"""
        if self.system.write_if_changed(JOURNALD_CONFIG, render(JOURNALD_TEMPLATE), 0o644):
            self.logger.info(f"Journald limits written to {JOURNALD_CONFIG}")
            self.system.run_checked(["systemctl", "restart", "systemd-journald"])

        logrotate = render(LOGROTATE_TEMPLATE, log_file=self.config.general.log_file)
        self.system.write_if_changed(LOGROTATE_CONFIG, logrotate, 0o644)

        console.print("[green]✓ 로그 로테이션 설정 완료[/green]")
        return True, "설정 완료"

    def create_monitoring_tools(self) -> Tuple[bool, str]:
        """리소스/Docker 상태 확인 스크립트 생성"""
        for name, template in MONITORING_SCRIPTS.items():
            path = os.path.join(self.config.monitoring.scripts_dir, name)
            self.system.write_if_changed(path, render(template), 0o755)
            console.print(f"  ✓ {path}")
            self.logger.debug(f"Monitoring script ready: {path}")
        return True, f"{len(MONITORING_SCRIPTS)}개 생성"

    def create_compose_template(self) -> Tuple[bool, str]:
        """리소스 제한이 적용된 Compose 템플릿 생성"""
        docker = self.config.docker
        files = {
            COMPOSE_TEMPLATE_FILE: render(
                COMPOSE_TEMPLATE, log_max_size=docker.log_max_size, log_max_file=docker.log_max_file
            ),
            ".env.example": render(ENV_EXAMPLE_TEMPLATE),
            "README.md": render(TEMPLATE_README, swap_size_mb=self.config.swap.swap_size_mb),
        }
        for name, content in files.items():
            self.system.write_if_changed(os.path.join(docker.templates_dir, name), content, 0o644)

        console.print(f"[green]✓ 템플릿 생성: {docker.templates_dir}[/green]")
        return True, docker.templates_dir
