"""
설정 관리 모듈
YAML/JSON 기반 설정 파일 관리 및 기본값 제공
"""

import os
import yaml
import json
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, asdict

from .logger import DEFAULT_LOG_FILE


@dataclass
class GeneralConfig:
    """일반 설정"""
    log_file: str = DEFAULT_LOG_FILE
    log_level: str = "INFO"


@dataclass
class ProbeConfig:
    """시스템 사전 점검 임계값"""
    min_memory_mb: int = 1500
    min_cpu_cores: int = 2


@dataclass
class SwapConfig:
    """디스크 스왑 파일 설정"""
    swap_file: str = "/swapfile"
    swap_size_mb: int = 2048  # 2GB RAM 기준


@dataclass
class ZramConfig:
    """zram 압축 스왑 설정"""
    size_mb: int = 512
    percent: int = 50
    priority: int = 100
    algorithm: str = "lz4"


@dataclass
class KernelConfig:
    """커널 파라미터 (sysctl)"""
    parameters: dict = field(default_factory=lambda: {
        "vm.swappiness": 10,
        "vm.vfs_cache_pressure": 50,
        "vm.dirty_ratio": 15,
        "vm.dirty_background_ratio": 5,
        "vm.overcommit_memory": 1,
        "net.core.somaxconn": 1024,
        "net.ipv4.ip_forward": 1,
        "fs.file-max": 262144,
    })


@dataclass
class ServicesConfig:
    """비활성화할 서비스 목록"""
    disable: list = field(default_factory=lambda: [
        "bluetooth", "cups", "ModemManager", "whoopsie", "avahi-daemon", "snapd",
    ])


@dataclass
class DockerConfig:
    """Docker / Docker Compose 설정"""
    install_script_url: str = "https://get.docker.com"
    compose_version: str = "v2.29.7"
    compose_url: str = "https://github.com/docker/compose/releases/download/{version}/docker-compose-linux-{arch}"
    log_max_size: str = "10m"
    log_max_file: int = 3
    templates_dir: str = "/root/docker-templates"


@dataclass
class MonitoringConfig:
    """모니터링 스크립트 설정"""
    scripts_dir: str = "/root"


@dataclass
class SecurityConfig:
    """선택적 보안 설정"""
    firewall_enabled: bool = False
    ssh_hardening: bool = False
    fail2ban_enabled: bool = False
    ssh_port: int = 22
    allowed_ports: list = field(default_factory=lambda: ["80/tcp", "443/tcp"])
    fail2ban_bantime: int = 3600
    fail2ban_maxretry: int = 3


@dataclass
class ValidationConfig:
    """검증 점수 정책"""
    full_success_rate: float = 100.0
    degraded_rate: float = 80.0
    min_available_memory_mb: int = 500
    fail_exit_code: int = 2


SECTIONS = (
    "general", "probe", "swap", "zram", "kernel", "services",
    "docker", "monitoring", "security", "validation",
)


class Config:
    """전체 설정 관리 클래스"""

    DEFAULT_CONFIG_PATHS = [
        "/etc/vps-optimizer/config.yaml",
        "~/.vps-optimizer/config.yaml",
        "./config/config.yaml",
        "./config.yaml",
    ]

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self.general = GeneralConfig()
        self.probe = ProbeConfig()
        self.swap = SwapConfig()
        self.zram = ZramConfig()
        self.kernel = KernelConfig()
        self.services = ServicesConfig()
        self.docker = DockerConfig()
        self.monitoring = MonitoringConfig()
        self.security = SecurityConfig()
        self.validation = ValidationConfig()

        if config_path:
            self.load(config_path)
        else:
            self._load_from_default_paths()

    def _load_from_default_paths(self):
        """기본 경로에서 설정 파일 로드"""
        for path in self.DEFAULT_CONFIG_PATHS:
            expanded_path = os.path.expanduser(path)
            if os.path.exists(expanded_path):
                self.load(expanded_path)
                return

    def load(self, path: str):
        """설정 파일 로드"""
        path = os.path.expanduser(path)
        if not os.path.exists(path):
            return

        with open(path, 'r', encoding='utf-8') as f:
            if path.endswith('.json'):
                data = json.load(f)
            else:
                data = yaml.safe_load(f) or {}

        self._update_from_dict(data)
        self.config_path = path

    def _update_from_dict(self, data: Dict[str, Any]):
        """딕셔너리에서 설정 업데이트 (알 수 없는 키는 무시)"""
        for section in SECTIONS:
            values = data.get(section)
            if not isinstance(values, dict):
                continue
            target = getattr(self, section)
            for key, value in values.items():
                if hasattr(target, key):
                    setattr(target, key, value)

    def save(self, path: Optional[str] = None):
        """설정 파일 저장"""
        save_path = path or self.config_path or self.DEFAULT_CONFIG_PATHS[0]
        save_path = os.path.expanduser(save_path)

        save_dir = os.path.dirname(save_path)
        if save_dir:
            os.makedirs(save_dir, exist_ok=True)

        data = self.to_dict()

        with open(save_path, 'w', encoding='utf-8') as f:
            if save_path.endswith('.json'):
                json.dump(data, f, indent=2)
            else:
                yaml.dump(data, f, default_flow_style=False, allow_unicode=True)

    def to_dict(self) -> Dict[str, Any]:
        """딕셔너리로 변환"""
        return {section: asdict(getattr(self, section)) for section in SECTIONS}

    def create_sample(self, output_path: str):
        """샘플 설정 파일 생성"""
        template = """# VPS Optimizer Configuration File
# 이 파일을 복사하여 config.yaml로 사용하세요

general:
  log_file: "/var/log/server-optimization.log"
  log_level: "INFO"  # DEBUG, INFO, WARNING, ERROR

# 사전 점검 (미달 시 경고만 출력)
probe:
  min_memory_mb: 1500
  min_cpu_cores: 2

# 디스크 스왑 (여유 공간이 부족하면 실행 중단)
swap:
  swap_file: "/swapfile"
  swap_size_mb: 2048

# zram 압축 스왑
zram:
  size_mb: 512
  percent: 50
  priority: 100
  algorithm: "lz4"  # lz4, zstd, lzo

kernel:
  parameters:
    vm.swappiness: 10
    vm.vfs_cache_pressure: 50
    vm.dirty_ratio: 15
    vm.dirty_background_ratio: 5
    vm.overcommit_memory: 1
    net.core.somaxconn: 1024
    net.ipv4.ip_forward: 1
    fs.file-max: 262144

services:
  disable:
    - "bluetooth"
    - "cups"
    - "ModemManager"
    - "whoopsie"
    - "avahi-daemon"
    - "snapd"

docker:
  install_script_url: "https://get.docker.com"
  compose_version: "v2.29.7"
  log_max_size: "10m"
  log_max_file: 3
  templates_dir: "/root/docker-templates"

monitoring:
  scripts_dir: "/root"

# 선택적 보안 설정
security:
  firewall_enabled: false
  ssh_hardening: false
  fail2ban_enabled: false
  ssh_port: 22
  allowed_ports:
    - "80/tcp"
    - "443/tcp"
  fail2ban_bantime: 3600
  fail2ban_maxretry: 3

# 검증 점수 정책
validation:
  full_success_rate: 100
  degraded_rate: 80
  min_available_memory_mb: 500
  fail_exit_code: 2  # 0이면 검증 실패도 정상 종료
"""

        output_dir = os.path.dirname(output_path)
        if output_dir:
            os.makedirs(output_dir, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(template)
