"""
프로비저닝 예외 정의
"""

from typing import Optional, Sequence


class ProvisioningError(Exception):
    """프로비저닝 관련 예외의 기본 클래스"""


class CommandError(ProvisioningError):
    """외부 명령 실행 실패"""

    def __init__(self, cmd: Sequence[str], returncode: int, stderr: str = ""):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr.strip()
        message = f"Command '{' '.join(self.cmd)}' failed with exit code {returncode}"
        if self.stderr:
            message += f": {self.stderr}"
        super().__init__(message)


class DownloadError(ProvisioningError):
    """HTTP 다운로드 실패"""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Download of {url} failed: {reason}")


class PreconditionError(ProvisioningError):
    """실행 전제 조건 불충족"""


class InsufficientDiskError(PreconditionError):
    """스왑 파일을 만들 디스크 공간 부족"""

    def __init__(self, available_mb: int, required_mb: int, path: Optional[str] = None):
        self.available_mb = available_mb
        self.required_mb = required_mb
        self.path = path
        location = f" on {path}" if path else ""
        super().__init__(
            f"Insufficient disk space{location}: {available_mb}MB available, "
            f"{required_mb}MB required for swap file"
        )


class CriticalStepError(ProvisioningError):
    """critical 단계 실패 (실행 중단)"""

    def __init__(self, step: str, message: str):
        self.step = step
        self.message = message
        super().__init__(f"Critical step '{step}' failed: {message}")
