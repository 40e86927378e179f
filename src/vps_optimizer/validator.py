#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
VPS Optimizer - 설치 검증 모듈

프로비저닝 단계가 보고한 결과를 믿지 않고, 실제 시스템 상태를 다시 조회하여
각 구성요소를 점검한다 (재부팅이 필요한 경우 등 적용이 유지되지 않은 상황 포함).

- 점검 항목 레지스트리 (이름, 판정 함수, 성공/실패 메시지, 심각도)
- 통과/실패 집계 및 성공률 계산
- 성공률 기준 판정: full success / degraded / failed
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Union

from .config import Config
from .exceptions import ProvisioningError
from .firewall import FirewallManager
from .logger import get_logger
from .security import SSHD_DROPIN
from .steps import (
    COMPOSE_TEMPLATE_FILE,
    FSTAB,
    JOURNALD_CONFIG,
    MONITORING_SCRIPTS,
    SYSCTL_CONFIG,
    fstab_has_entry,
    parse_sysctl_conf,
)
from .system import SystemInterface
from .zram import zram_active

Message = Union[str, Callable[[], str]]


class Severity(Enum):
    """실패 시 심각도"""
    ERROR = "error"
    WARNING = "warning"


class Verdict(Enum):
    """검증 판정"""
    FULL_SUCCESS = "full_success"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass(frozen=True)
class ValidationCheck:
    """검증 항목"""
    name: str
    probe: Callable[[], bool]
    success_message: Message
    failure_message: Message
    severity: Severity = Severity.ERROR


@dataclass(frozen=True)
class CheckOutcome:
    """검증 항목 결과"""
    name: str
    passed: bool
    severity: Severity
    message: str

    @property
    def is_warning(self) -> bool:
        return not self.passed and self.severity is Severity.WARNING


def success_rate(passed: int, total: int) -> float:
    """성공률 (%)"""
    if total == 0:
        return 0.0
    return passed * 100.0 / total


def classify(rate: float, full_success_rate: float = 100.0, degraded_rate: float = 80.0) -> Verdict:
    """성공률 기준 판정"""
    if rate >= full_success_rate:
        return Verdict.FULL_SUCCESS
    if rate >= degraded_rate:
        return Verdict.DEGRADED
    return Verdict.FAILED


@dataclass
class RunReport:
    """검증 리포트

    통과하지 못한 항목은 모두 failed 로 집계된다 (passed + failed == total).
    warnings 는 그중 경고 심각도인 항목 수다.
    """
    outcomes: List[CheckOutcome] = field(default_factory=list)
    full_success_rate: float = 100.0
    degraded_rate: float = 80.0

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def passed(self) -> int:
        return sum(1 for o in self.outcomes if o.passed)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.passed)

    @property
    def warnings(self) -> int:
        return sum(1 for o in self.outcomes if o.is_warning)

    @property
    def errors(self) -> int:
        return self.failed - self.warnings

    @property
    def success_rate(self) -> float:
        return success_rate(self.passed, self.total)

    @property
    def verdict(self) -> Verdict:
        return classify(self.success_rate, self.full_success_rate, self.degraded_rate)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "warnings": self.warnings,
            "success_rate": round(self.success_rate, 2),
            "verdict": self.verdict.value,
            "checks": [
                {
                    "name": o.name,
                    "passed": o.passed,
                    "severity": o.severity.value,
                    "message": o.message,
                }
                for o in self.outcomes
            ],
        }


def _text(message: Message) -> str:
    return message() if callable(message) else message


class Validator:
    """설치 결과 검증 클래스"""

    def __init__(self, system: SystemInterface, config: Config):
        """
        Args:
            system: 시스템 인터페이스
            config: 전체 설정
        """
        self.system = system
        self.config = config
        self.logger = get_logger()
        self.checks = self._build_registry()

    @property
    def expected_swappiness(self) -> str:
        return str(self.config.kernel.parameters.get("vm.swappiness", 10))

    def _build_registry(self) -> List[ValidationCheck]:
        swap = self.config.swap
        floor = self.config.validation.min_available_memory_mb

        checks = [
            ValidationCheck(
                "Docker Engine", self.check_docker_installed,
                "Docker Engine is installed and working",
                "Docker Engine is not properly installed",
            ),
            ValidationCheck(
                "Docker Service", lambda: self.system.service_is_active("docker"),
                "Docker service is running",
                "Docker service is not running",
            ),
            ValidationCheck(
                "Docker Daemon", lambda: self.system.run(["docker", "info"]).ok,
                "Docker daemon is accessible",
                "Docker daemon is not accessible",
            ),
            ValidationCheck(
                "Docker Compose", self.check_compose_installed,
                "Docker Compose is installed and working",
                "Docker Compose is not properly installed",
            ),
            ValidationCheck(
                "zram", lambda: zram_active(self.system),
                "Compressed swap (zram) is active",
                "zram is not active (module unavailable or reboot required)",
                Severity.WARNING,
            ),
            ValidationCheck(
                "Swap File", self.check_swap_file_active,
                f"Swap file is created and active ({swap.swap_size_mb}MB)",
                f"Swap file {swap.swap_file} is not properly configured",
            ),
            ValidationCheck(
                "Swap in fstab",
                lambda: fstab_has_entry(self.system.read_file(FSTAB) or "", swap.swap_file),
                f"Swap file is registered in {FSTAB}",
                f"Swap file is not in {FSTAB}",
            ),
            ValidationCheck(
                "Sysctl Config", self.check_sysctl_config,
                "Kernel parameters optimized",
                lambda: f"{SYSCTL_CONFIG} does not set vm.swappiness={self.expected_swappiness}",
            ),
            ValidationCheck(
                "Swappiness", self.check_swappiness,
                lambda: f"Swappiness is set to {self.expected_swappiness}",
                lambda: (
                    f"Swappiness is {self.system.sysctl_value('vm.swappiness')} "
                    f"(expected {self.expected_swappiness})"
                ),
            ),
            ValidationCheck(
                "Journald Config", lambda: self.system.exists(JOURNALD_CONFIG),
                "Journald log rotation configured",
                "Journald configuration missing",
            ),
            ValidationCheck(
                "Services Disabled", self.check_services_disabled,
                "Unnecessary services are disabled",
                lambda: f"Services still enabled: {', '.join(self.enabled_services())}",
                Severity.WARNING,
            ),
        ]

        for name in MONITORING_SCRIPTS:
            path = os.path.join(self.config.monitoring.scripts_dir, name)
            checks.append(ValidationCheck(
                f"Monitoring Script {name}",
                lambda path=path: self.system.is_executable(path),
                f"{name} is executable",
                f"{name} is missing or not executable",
            ))

        template = os.path.join(self.config.docker.templates_dir, COMPOSE_TEMPLATE_FILE)
        checks.append(ValidationCheck(
            "Docker Template", lambda: self.system.exists(template),
            "Docker Compose template created",
            "Docker Compose template missing",
        ))
        checks.append(ValidationCheck(
            "Available Memory", lambda: self.available_memory_mb() > floor,
            lambda: f"Available memory: {self.available_memory_mb()}MB (good)",
            lambda: f"Available memory: {self.available_memory_mb()}MB (below {floor}MB)",
            Severity.WARNING,
        ))

        security = self.config.security
        if security.firewall_enabled:
            firewall = FirewallManager(self.system, security)
            checks.append(ValidationCheck(
                "Firewall", firewall.is_active,
                "UFW firewall is active",
                "UFW firewall is not active",
            ))
        if security.ssh_hardening:
            checks.append(ValidationCheck(
                "SSH Hardening", lambda: self.system.exists(SSHD_DROPIN),
                "SSH hardening configuration present",
                f"{SSHD_DROPIN} missing",
            ))
        if security.fail2ban_enabled:
            checks.append(ValidationCheck(
                "fail2ban", lambda: self.system.service_is_active("fail2ban"),
                "fail2ban is running",
                "fail2ban is not running",
            ))

        return checks

    def check_docker_installed(self) -> bool:
        return self.system.command_exists("docker") and self.system.run(["docker", "--version"]).ok

    def check_compose_installed(self) -> bool:
        return (
            self.system.command_exists("docker-compose")
            and self.system.run(["docker-compose", "--version"]).ok
        )

    def check_swap_file_active(self) -> bool:
        path = self.config.swap.swap_file
        return self.system.exists(path) and path in self.system.active_swaps()

    def check_sysctl_config(self) -> bool:
        content = self.system.read_file(SYSCTL_CONFIG)
        if content is None:
            return False
        return parse_sysctl_conf(content).get("vm.swappiness") == self.expected_swappiness

    def check_swappiness(self) -> bool:
        return self.system.sysctl_value("vm.swappiness") == self.expected_swappiness

    def enabled_services(self) -> List[str]:
        return [s for s in self.config.services.disable if self.system.service_is_enabled(s)]

    def check_services_disabled(self) -> bool:
        return not self.enabled_services()

    def available_memory_mb(self) -> int:
        return self.system.meminfo().get("MemAvailable", 0) // 1024

    def evaluate(self, check: ValidationCheck) -> CheckOutcome:
        """단일 항목 평가 (판정 함수 오류는 실패로 처리)"""
        self.logger.debug(f"Checking: {check.name}")
        try:
            passed = bool(check.probe())
            message = _text(check.success_message if passed else check.failure_message)
        except (ProvisioningError, OSError, ValueError) as e:
            passed = False
            message = f"{_text(check.failure_message)} ({e})"

        if passed:
            self.logger.info(f"✅ {message}")
        elif check.severity is Severity.WARNING:
            self.logger.warning(f"⚠️  {message}")
        else:
            self.logger.error(f"❌ {message}")

        return CheckOutcome(check.name, passed, check.severity, message)

    def validate(self) -> RunReport:
        """모든 항목 검증

        Returns:
            RunReport: 검증 리포트
        """
        self.logger.info("Starting comprehensive installation validation...")
        self.logger.section("SYSTEM VALIDATION REPORT")

        policy = self.config.validation
        report = RunReport(
            full_success_rate=policy.full_success_rate,
            degraded_rate=policy.degraded_rate,
        )
        for check in self.checks:
            report.outcomes.append(self.evaluate(check))

        return report
