"""
로깅 시스템
고정 경로 로그 파일(append) 및 터미널일 때 Rich 콘솔 미러링

재실행 이력이 한 파일에 이어서 쌓이도록 타임스탬프 파일명을 쓰지 않는다.
"""

import logging
import os
from typing import Optional
from rich.logging import RichHandler
from rich.console import Console

console = Console()

DEFAULT_LOG_FILE = "/var/log/server-optimization.log"
LOGGER_NAME = "vps_optimizer"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class OptimizerLogger:
    """프로비저닝 로거

    Args:
        log_file: 로그 파일 경로 (없으면 상위 디렉토리까지 생성)
        log_level: 기본 로그 레벨 이름
        debug: True 면 log_level 을 무시하고 DEBUG
        interactive: 콘솔 미러링 여부 (None 이면 터미널일 때만)
    """

    def __init__(self, log_file: str = DEFAULT_LOG_FILE, log_level: str = "INFO",
                 debug: bool = False, interactive: Optional[bool] = None):
        self.log_file = log_file
        self.level = logging.DEBUG if debug else getattr(logging, log_level.upper())
        self.debug_mode = debug
        self.interactive = console.is_terminal if interactive is None else interactive

        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        self.logger = logging.getLogger(LOGGER_NAME)
        self.logger.setLevel(self.level)
        self.logger.propagate = False
        self.close()

        self.logger.addHandler(self._file_handler())
        if self.interactive:
            self.logger.addHandler(self._console_handler())

    def _file_handler(self) -> logging.Handler:
        handler = logging.FileHandler(self.log_file, mode='a', encoding='utf-8')
        handler.setLevel(self.level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        return handler

    def _console_handler(self) -> logging.Handler:
        handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_time=False,
            show_path=self.debug_mode
        )
        handler.setLevel(self.level)
        return handler

    def close(self):
        """등록된 핸들러 정리"""
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)

    def debug(self, message: str):
        self.logger.debug(message)

    def info(self, message: str):
        self.logger.info(message)

    def warning(self, message: str):
        self.logger.warning(message)

    def error(self, message: str):
        self.logger.error(message)

    def critical(self, message: str):
        self.logger.critical(message)

    def exception(self, message: str):
        """트레이스백 포함"""
        self.logger.exception(message)

    def section(self, title: str):
        """로그 파일 구분용 헤더"""
        self.logger.info(f"=== {title} ===")

    def command(self, cmd, returncode: int, stderr: str = ""):
        """외부 명령 종료 코드 기록 (실패 시 stderr 포함)"""
        line = ' '.join(str(c) for c in cmd)
        if returncode == 0:
            self.logger.debug(f"Command ok: {line}")
        else:
            self.logger.debug(f"Command exit {returncode}: {line}: {stderr.strip()}")

    def get_log_files(self) -> dict:
        return {
            "main_log": self.log_file,
            "log_dir": os.path.dirname(self.log_file),
        }


_logger: Optional[OptimizerLogger] = None


def get_logger() -> OptimizerLogger:
    """현재 로거 (초기화 전이면 기본 경로로 생성)"""
    global _logger
    if _logger is None:
        _logger = OptimizerLogger()
    return _logger


def init_logger(log_file: str, log_level: str = "INFO", debug: bool = False,
                interactive: Optional[bool] = None) -> OptimizerLogger:
    """로거 (재)초기화"""
    global _logger
    _logger = OptimizerLogger(log_file, log_level, debug, interactive)
    return _logger
