"""
테스트 공용 픽스처
FakeHost: apt / systemd / modprobe / swap / sysctl 상태를 메모리에서 흉내내는 시스템 인터페이스
"""

import os
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from vps_optimizer.config import Config
from vps_optimizer.exceptions import DownloadError
from vps_optimizer.logger import init_logger
from vps_optimizer.steps import parse_sysctl_conf
from vps_optimizer.system import CommandResult, SystemInterface

KERNEL_RELEASE = "6.1.0-test-amd64"


class FakeHost(SystemInterface):
    """메모리 기반 가짜 호스트"""

    def __init__(self, network: bool = True, zram_module: bool = True,
                 extra_modules_available: bool = True, zramswap_works: bool = True,
                 manual_zram_works: bool = True, docker_installed: bool = False,
                 compose_installed: bool = False, disk_free_mb: int = 20000,
                 mem_total_mb: int = 2000, mem_available_mb: int = 1200, cpus: int = 2,
                 machine: str = "x86_64"):
        self.network = network
        self.module_available = zram_module
        self.extra_modules_available = extra_modules_available
        self.zramswap_works = zramswap_works
        self.manual_zram_works = manual_zram_works
        self.disk_free = disk_free_mb
        self.mem_total_mb = mem_total_mb
        self.mem_available_mb = mem_available_mb
        self.cpus = cpus
        self.arch = machine

        self.files: Dict[str, str] = {"/etc/fstab": "UUID=abc / ext4 defaults 0 1\n"}
        self.modes: Dict[str, int] = {}
        self.sizes: Dict[str, int] = {}
        self.commands = {
            "apt-get", "dpkg", "systemctl", "modprobe", "swapon", "swapoff", "mkswap",
            "fallocate", "dd", "sysctl", "sh", "sshd", "blkid",
        }
        self.packages = set()
        self.units: Dict[str, Dict[str, bool]] = {
            "systemd-journald": {"enabled": True, "active": True},
            "ssh": {"enabled": True, "active": True},
            "bluetooth": {"enabled": True, "active": True},
            "cups": {"enabled": True, "active": True},
        }
        self.swaps: List[str] = []
        self.swap_signatures = set()
        self.sysctl: Dict[str, str] = {"vm.swappiness": "60"}
        self.loaded_modules = set()
        self.ufw_active = False
        self.sshd_config_valid = True

        self.calls: List[List[str]] = []
        self.writes: List[str] = []
        self.failures: Dict[Tuple[str, ...], int] = {}

        if docker_installed:
            self._install_docker()
        if compose_installed:
            self.files["/usr/local/bin/docker-compose"] = "binary"
            self.modes["/usr/local/bin/docker-compose"] = 0o755

    # --- 테스트 헬퍼 ---

    def fail(self, *prefix: str, returncode: int = 1):
        """해당 접두사로 시작하는 명령을 실패시킨다"""
        self.failures[tuple(prefix)] = returncode

    def called(self, *prefix: str) -> bool:
        return any(tuple(c[:len(prefix)]) == prefix for c in self.calls)

    def _install_docker(self):
        self.commands.add("docker")
        self.packages.add("docker-ce")
        self.units.setdefault("docker", {"enabled": False, "active": False})

    # --- 원시 연산 ---

    def run(self, cmd: Sequence[str], input: Optional[str] = None) -> CommandResult:
        cmd = [str(c) for c in cmd]
        self.calls.append(cmd)

        for prefix, returncode in self.failures.items():
            if tuple(cmd[:len(prefix)]) == prefix:
                return CommandResult(cmd, returncode, "", "injected failure")

        name = cmd[0]
        if name.startswith("/"):
            if not self.is_executable(name):
                return CommandResult(cmd, 127, "", f"{name}: not found")
            name = os.path.basename(name)
        elif self.which(name) is None:
            return CommandResult(cmd, 127, "", f"{name}: command not found")

        handler = getattr(self, "_cmd_" + name.replace("-", "_"), None)
        if handler is None:
            return CommandResult(cmd, 0)
        returncode, stdout, stderr = handler(cmd[1:])
        return CommandResult(cmd, returncode, stdout, stderr)

    def which(self, name: str) -> Optional[str]:
        if name in self.commands:
            return f"/usr/bin/{name}"
        for directory in ("/usr/local/bin", "/usr/bin"):
            path = f"{directory}/{name}"
            if self.is_executable(path):
                return path
        return None

    def read_file(self, path: str) -> Optional[str]:
        if path == "/proc/swaps":
            lines = ["Filename\tType\tSize\tUsed\tPriority"]
            lines += [f"{dev}\tpartition\t524284\t0\t100" for dev in self.swaps]
            return "\n".join(lines) + "\n"
        if path == "/proc/meminfo":
            return (
                f"MemTotal:       {self.mem_total_mb * 1024} kB\n"
                f"MemFree:        {self.mem_available_mb * 512} kB\n"
                f"MemAvailable:   {self.mem_available_mb * 1024} kB\n"
            )
        if path.startswith("/proc/sys/"):
            key = path[len("/proc/sys/"):].replace("/", ".")
            value = self.sysctl.get(key)
            return None if value is None else value + "\n"
        return self.files.get(path)

    def write_file(self, path: str, content: str, mode: Optional[int] = None):
        self.files[path] = content
        self.writes.append(path)
        if mode is not None:
            self.modes[path] = mode

    def remove_file(self, path: str):
        self.files.pop(path, None)
        self.modes.pop(path, None)

    def chmod(self, path: str, mode: int):
        if path not in self.files:
            raise FileNotFoundError(path)
        self.modes[path] = mode

    def exists(self, path: str) -> bool:
        return path in self.files

    def is_executable(self, path: str) -> bool:
        return path in self.files and bool(self.modes.get(path, 0o644) & 0o111)

    def file_size(self, path: str) -> Optional[int]:
        if path not in self.files:
            return None
        return self.sizes.get(path, len(self.files[path]))

    def disk_free_mb(self, path: str) -> int:
        return self.disk_free

    def cpu_count(self) -> int:
        return self.cpus

    def kernel_release(self) -> str:
        return KERNEL_RELEASE

    def machine(self) -> str:
        return self.arch

    def download(self, url: str, dest: str, mode: Optional[int] = None):
        self.calls.append(["download", url, dest])
        if not self.network:
            raise DownloadError(url, "network unreachable")
        self.write_file(dest, "#!/bin/sh\n", mode)

    # --- 명령 핸들러: (returncode, stdout, stderr) ---

    def _cmd_apt_get(self, args):
        if not self.network:
            return 100, "", "Temporary failure resolving 'deb.debian.org'"
        if args[0] != "install":
            return 0, "", ""
        packages = [a for a in args[1:] if not a.startswith("-")]
        for package in packages:
            if package.startswith("linux-modules-extra") and not self.extra_modules_available:
                return 100, "", f"E: Unable to locate package {package}"
        for package in packages:
            self.packages.add(package)
            if package.startswith("linux-modules-extra"):
                self.module_available = True
            elif package == "zram-tools":
                self.units.setdefault("zramswap", {"enabled": False, "active": False})
            elif package == "ufw":
                self.commands.add("ufw")
            elif package == "fail2ban":
                self.units.setdefault("fail2ban", {"enabled": False, "active": False})
        return 0, "", ""

    def _cmd_dpkg(self, args):
        return (0 if args[-1] in self.packages else 1), "", ""

    def _start_unit(self, unit: str) -> bool:
        if unit == "zramswap":
            works = self.zramswap_works and "zram" in self.loaded_modules
            self.units[unit]["active"] = works
            if works and "/dev/zram0" not in self.swaps:
                self.swaps.append("/dev/zram0")
            return works
        self.units[unit]["active"] = True
        return True

    def _cmd_systemctl(self, args):
        action = args[0]
        names = [a for a in args[1:] if not a.startswith("-")]
        if action == "daemon-reload":
            return 0, "", ""
        unit = names[0]
        state = self.units.get(unit)
        if action == "is-active":
            return (0 if state and state["active"] else 3), "", ""
        if action == "is-enabled":
            return (0 if state and state["enabled"] else 1), "", ""
        if state is None:
            return 5, "", f"Unit {unit}.service not found."
        if action == "enable":
            state["enabled"] = True
            if "--now" in args:
                self._start_unit(unit)
        elif action == "disable":
            state["enabled"] = False
            if "--now" in args:
                state["active"] = False
        elif action in ("start", "restart"):
            if not self._start_unit(unit):
                return 1, "", f"Job for {unit}.service failed."
        elif action == "stop":
            state["active"] = False
        return 0, "", ""

    def _cmd_modprobe(self, args):
        if args[0] == "-r":
            if "/dev/zram0" in self.swaps:
                return 1, "", "modprobe: FATAL: Module zram is in use."
            self.loaded_modules.discard(args[1])
            return 0, "", ""
        if args[0] == "zram" and self.module_available:
            self.loaded_modules.add("zram")
            return 0, "", ""
        return 1, "", f"modprobe: FATAL: Module {args[0]} not found in directory /lib/modules/{KERNEL_RELEASE}"

    def _allocate(self, path: str, size_mb: int):
        self.files[path] = ""
        self.sizes[path] = size_mb * 1024 * 1024
        self.swap_signatures.discard(path)
        self.disk_free -= size_mb

    def _cmd_fallocate(self, args):
        self._allocate(args[-1], int(args[1].rstrip("M")))
        return 0, "", ""

    def _cmd_dd(self, args):
        options = dict(a.split("=", 1) for a in args if "=" in a)
        self._allocate(options["of"], int(options["count"]))
        return 0, "", ""

    def _cmd_mkswap(self, args):
        path = args[-1]
        if path.startswith("/dev/zram"):
            return (0 if "zram" in self.loaded_modules else 1), "", ""
        if path not in self.files:
            return 1, "", f"mkswap: cannot open {path}: No such file or directory"
        self.swap_signatures.add(path)
        return 0, "", ""

    def _cmd_blkid(self, args):
        path = args[-1]
        if path in self.swap_signatures:
            return 0, "swap\n", ""
        return 2, "", ""

    def _cmd_swapon(self, args):
        path = args[-1]
        if path in self.swaps:
            return 255, "", f"swapon: {path}: swapon failed: Device or resource busy"
        if path.startswith("/dev/zram"):
            if not ("zram" in self.loaded_modules and self.manual_zram_works):
                return 255, "", f"swapon: {path}: swapon failed: Invalid argument"
        elif path not in self.files:
            return 255, "", f"swapon: cannot open {path}"
        elif path not in self.swap_signatures:
            return 255, "", f"swapon: {path}: read swap header failed"
        self.swaps.append(path)
        return 0, "", ""

    def _cmd_swapoff(self, args):
        path = args[-1]
        if path not in self.swaps:
            return 255, "", f"swapoff: {path}: swapoff failed: Invalid argument"
        self.swaps.remove(path)
        return 0, "", ""

    def _cmd_sysctl(self, args):
        if "--system" in args:
            for path in sorted(self.files):
                if path.startswith("/etc/sysctl.d/") and path.endswith(".conf"):
                    self.sysctl.update(parse_sysctl_conf(self.files[path]))
        return 0, "", ""

    def _cmd_sh(self, args):
        self._install_docker()
        return 0, "", ""

    def _cmd_docker(self, args):
        if args[0] == "--version":
            return 0, "Docker version 27.3.1, build ce12230\n", ""
        if args[0] == "info":
            docker = self.units.get("docker", {})
            return (0 if docker.get("active") else 1), "", ""
        return 0, "", ""

    def _cmd_docker_compose(self, args):
        return 0, "Docker Compose version v2.29.7\n", ""

    def _cmd_ufw(self, args):
        if args[0] == "status":
            return 0, "Status: active\n" if self.ufw_active else "Status: inactive\n", ""
        if args[:2] == ["--force", "enable"]:
            self.ufw_active = True
        return 0, "", ""

    def _cmd_sshd(self, args):
        if self.sshd_config_valid:
            return 0, "", ""
        return 255, "", "/etc/ssh/sshd_config.d/99-hardening.conf: line 2: Bad configuration option"


@pytest.fixture(autouse=True)
def log_file(tmp_path):
    """로거를 임시 파일로 초기화"""
    path = tmp_path / "server-optimization.log"
    init_logger(str(path), "DEBUG", interactive=False)
    return path


@pytest.fixture
def config(monkeypatch):
    """기본 경로의 설정 파일을 읽지 않는 기본 설정"""
    monkeypatch.setattr(Config, "DEFAULT_CONFIG_PATHS", [])
    return Config()


@pytest.fixture
def fresh_host():
    return FakeHost()


@pytest.fixture
def offline_host():
    """Docker 는 있지만 zram 모듈과 인터넷이 없는 호스트"""
    return FakeHost(network=False, zram_module=False,
                    docker_installed=True, compose_installed=True)
