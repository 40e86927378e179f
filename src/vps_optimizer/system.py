"""
시스템 인터페이스 모듈
호스트 OS(명령 실행, 파일, 서비스, 패키지)에 대한 모든 접근을 한 곳에 모은다.
엔진은 이 인터페이스만 사용하므로 테스트에서는 가짜 구현으로 대체할 수 있다.
"""

import os
import platform
import shutil
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import requests

from .exceptions import CommandError, DownloadError
from .logger import get_logger

DOWNLOAD_TIMEOUT = 60
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


@dataclass
class CommandResult:
    """외부 명령 실행 결과"""
    cmd: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class SystemInterface:
    """호스트 접근 기본 클래스

    하위 클래스는 원시 연산(run, 파일 입출력, 하드웨어 정보, 다운로드)만
    구현하면 되고, 서비스/패키지/스왑 조회 헬퍼는 여기서 공통으로 제공한다.
    """

    # --- 원시 연산 ---

    def run(self, cmd: Sequence[str], input: Optional[str] = None) -> CommandResult:
        raise NotImplementedError

    def which(self, name: str) -> Optional[str]:
        raise NotImplementedError

    def read_file(self, path: str) -> Optional[str]:
        raise NotImplementedError

    def write_file(self, path: str, content: str, mode: Optional[int] = None):
        raise NotImplementedError

    def remove_file(self, path: str):
        raise NotImplementedError

    def chmod(self, path: str, mode: int):
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def is_executable(self, path: str) -> bool:
        raise NotImplementedError

    def file_size(self, path: str) -> Optional[int]:
        raise NotImplementedError

    def disk_free_mb(self, path: str) -> int:
        raise NotImplementedError

    def cpu_count(self) -> int:
        raise NotImplementedError

    def kernel_release(self) -> str:
        raise NotImplementedError

    def machine(self) -> str:
        raise NotImplementedError

    def download(self, url: str, dest: str, mode: Optional[int] = None):
        raise NotImplementedError

    # --- 공통 헬퍼 ---

    def run_checked(self, cmd: Sequence[str], input: Optional[str] = None) -> CommandResult:
        """명령 실행, 실패 시 CommandError"""
        result = self.run(cmd, input=input)
        if not result.ok:
            raise CommandError(cmd, result.returncode, result.stderr)
        return result

    def command_exists(self, name: str) -> bool:
        return self.which(name) is not None

    def service_is_active(self, name: str) -> bool:
        return self.run(["systemctl", "is-active", "--quiet", name]).ok

    def service_is_enabled(self, name: str) -> bool:
        return self.run(["systemctl", "is-enabled", "--quiet", name]).ok

    def package_installed(self, name: str) -> bool:
        return self.run(["dpkg", "-s", name]).ok

    def apt_install(self, packages: Sequence[str]) -> CommandResult:
        """이미 설치된 패키지는 제외하고 설치"""
        missing = [p for p in packages if not self.package_installed(p)]
        if not missing:
            return CommandResult(["apt-get", "install"], 0)
        return self.run(["apt-get", "install", "-y", "--no-install-recommends", *missing])

    def active_swaps(self) -> List[str]:
        """/proc/swaps 의 활성 스왑 장치/파일 목록"""
        content = self.read_file("/proc/swaps") or ""
        swaps = []
        for line in content.splitlines()[1:]:
            parts = line.split()
            if parts:
                swaps.append(parts[0])
        return swaps

    def meminfo(self) -> Dict[str, int]:
        """/proc/meminfo (kB 단위)"""
        info: Dict[str, int] = {}
        content = self.read_file("/proc/meminfo") or ""
        for line in content.splitlines():
            key, _, rest = line.partition(":")
            value = rest.strip().split()
            if value and value[0].isdigit():
                info[key.strip()] = int(value[0])
        return info

    def sysctl_value(self, key: str) -> Optional[str]:
        """현재 커널 파라미터 값 (/proc/sys)"""
        raw = self.read_file("/proc/sys/" + key.replace(".", "/"))
        if raw is None:
            return None
        return " ".join(raw.split())

    def write_if_changed(self, path: str, content: str, mode: Optional[int] = None) -> bool:
        """내용이 다를 때만 기록, 변경 여부 반환"""
        if self.read_file(path) == content:
            if mode is not None:
                self.chmod(path, mode)
            return False
        self.write_file(path, content, mode)
        return True


class HostSystem(SystemInterface):
    """실제 호스트 구현 (subprocess / requests)"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.logger = get_logger()
        self.env = dict(os.environ, DEBIAN_FRONTEND="noninteractive")

    def run(self, cmd: Sequence[str], input: Optional[str] = None) -> CommandResult:
        cmd = [str(c) for c in cmd]
        self.logger.debug(f"Executing: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                input=input,
                capture_output=True,
                text=True,
                env=self.env
            )
        except FileNotFoundError:
            self.logger.debug(f"Command not found: {cmd[0]}")
            return CommandResult(cmd, 127, "", f"{cmd[0]}: command not found")

        self.logger.command(cmd, result.returncode, result.stderr)
        return CommandResult(cmd, result.returncode, result.stdout, result.stderr)

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name)

    def read_file(self, path: str) -> Optional[str]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except (FileNotFoundError, NotADirectoryError):
            return None

    def write_file(self, path: str, content: str, mode: Optional[int] = None):
        parent = os.path.dirname(path)
        if parent and not path.startswith(("/sys/", "/proc/")):
            os.makedirs(parent, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
        if mode is not None:
            os.chmod(path, mode)
        self.logger.debug(f"Wrote {path}")

    def remove_file(self, path: str):
        if os.path.exists(path):
            os.remove(path)

    def chmod(self, path: str, mode: int):
        os.chmod(path, mode)

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def is_executable(self, path: str) -> bool:
        return os.path.isfile(path) and os.access(path, os.X_OK)

    def file_size(self, path: str) -> Optional[int]:
        try:
            return os.path.getsize(path)
        except OSError:
            return None

    def disk_free_mb(self, path: str) -> int:
        # 아직 없는 경로면 존재하는 상위 디렉토리 기준
        probe_path = path
        while probe_path and not os.path.exists(probe_path):
            probe_path = os.path.dirname(probe_path.rstrip("/")) or "/"
        return shutil.disk_usage(probe_path or "/").free // (1024 * 1024)

    def cpu_count(self) -> int:
        return os.cpu_count() or 1

    def kernel_release(self) -> str:
        return platform.release()

    def machine(self) -> str:
        return platform.machine()

    def download(self, url: str, dest: str, mode: Optional[int] = None):
        self.logger.debug(f"Downloading {url} -> {dest}")
        parent = os.path.dirname(dest)
        if parent:
            os.makedirs(parent, exist_ok=True)

        # 응답 본문을 메모리에 올리지 않고 청크 단위로 기록
        try:
            with requests.get(url, timeout=DOWNLOAD_TIMEOUT, stream=True) as response:
                response.raise_for_status()
                with open(dest, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        f.write(chunk)
        except requests.exceptions.RequestException as e:
            # 부분 파일 제거
            self.remove_file(dest)
            raise DownloadError(url, str(e)) from e
        if mode is not None:
            os.chmod(dest, mode)
