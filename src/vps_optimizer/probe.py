"""
시스템 사전 점검 모듈
메모리, 디스크, CPU 정보를 한 번만 수집하여 실행 전제 조건을 확인한다.
"""

import os
from dataclasses import dataclass
from rich.console import Console

from .config import Config
from .exceptions import InsufficientDiskError
from .logger import get_logger
from .system import SystemInterface

console = Console()


@dataclass(frozen=True)
class SystemFacts:
    """실행 시작 시점의 시스템 스냅샷"""
    memory_mb: int
    disk_free_mb: int
    cpu_cores: int
    required_disk_mb: int


def required_swap_disk_mb(system: SystemInterface, config: Config) -> int:
    """스왑 파일 생성에 필요한 디스크 공간 (이미 있으면 0)"""
    swap_file = config.swap.swap_file
    size_bytes = config.swap.swap_size_mb * 1024 * 1024
    existing = system.file_size(swap_file) if system.exists(swap_file) else None
    if existing is not None and existing >= size_bytes:
        return 0
    return config.swap.swap_size_mb


def probe(system: SystemInterface, config: Config) -> SystemFacts:
    """시스템 정보 수집 및 전제 조건 확인

    권장치 미달(메모리, CPU)은 경고만 남긴다. 스왑 파일을 만들 디스크 공간이
    부족할 때만 InsufficientDiskError 를 발생시킨다.
    """
    logger = get_logger()
    console.print("\n[bold cyan]시스템 요구사항 확인 중...[/bold cyan]\n")
    logger.info("Checking system requirements...")

    memory_mb = system.meminfo().get("MemTotal", 0) // 1024
    swap_dir = os.path.dirname(config.swap.swap_file) or "/"
    disk_free_mb = system.disk_free_mb(swap_dir)
    cpu_cores = system.cpu_count()
    required_mb = required_swap_disk_mb(system, config)

    facts = SystemFacts(
        memory_mb=memory_mb,
        disk_free_mb=disk_free_mb,
        cpu_cores=cpu_cores,
        required_disk_mb=required_mb,
    )
    logger.info(f"Memory: {memory_mb}MB, CPU cores: {cpu_cores}, free disk: {disk_free_mb}MB")

    if memory_mb < config.probe.min_memory_mb:
        logger.warning(
            f"Total memory {memory_mb}MB is below recommended {config.probe.min_memory_mb}MB"
        )
    if cpu_cores < config.probe.min_cpu_cores:
        logger.warning(
            f"CPU cores {cpu_cores} below recommended {config.probe.min_cpu_cores}"
        )

    if disk_free_mb < required_mb:
        logger.error(
            f"Insufficient disk space for swap file: {disk_free_mb}MB available, {required_mb}MB required"
        )
        raise InsufficientDiskError(disk_free_mb, required_mb, swap_dir)

    if required_mb == 0:
        logger.debug(f"Swap file {config.swap.swap_file} already exists, disk check skipped")

    logger.info("System requirements check passed")
    return facts
