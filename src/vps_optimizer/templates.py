"""
생성 파일 템플릿
Jinja2 로 렌더링하며, 재실행 시 변경 감지가 가능하도록 타임스탬프를 넣지 않는다.
"""

import json
from typing import Any, Dict

from jinja2 import Template

HEADER = "# Managed by vps-optimizer. Local changes will be overwritten."


ZRAMSWAP_TEMPLATE = """{{ header }}
# zram-tools configuration
ALGO={{ algorithm }}
SIZE={{ size_mb }}
PERCENT={{ percent }}
PRIORITY={{ priority }}
"""

SYSCTL_TEMPLATE = """{{ header }}
# Kernel tuning for 2 CPU / 2GB RAM container hosts
{% for key, value in parameters | dictsort %}{{ key }} = {{ value }}
{% endfor %}"""

JOURNALD_TEMPLATE = """{{ header }}
[Journal]
Compress=yes
SystemMaxUse=100M
SystemMaxFileSize=20M
MaxRetentionSec=1week
ForwardToSyslog=no
"""

LOGROTATE_TEMPLATE = """{{ header }}
{{ log_file }} {
    weekly
    rotate 4
    compress
    delaycompress
    missingok
    notifempty
    copytruncate
}
"""

SSHD_HARDENING_TEMPLATE = """{{ header }}
Port {{ ssh_port }}
PermitRootLogin prohibit-password
PasswordAuthentication no
KbdInteractiveAuthentication no
PermitEmptyPasswords no
X11Forwarding no
MaxAuthTries 3
LoginGraceTime 30
ClientAliveInterval 300
ClientAliveCountMax 2
"""

JAIL_LOCAL_TEMPLATE = """{{ header }}
[DEFAULT]
bantime  = {{ bantime }}
findtime = 600
maxretry = {{ maxretry }}
backend  = systemd
usedns   = warn

[sshd]
enabled  = true
port     = {{ ssh_port }}
maxretry = {{ maxretry }}
"""

CHECK_RESOURCES_TEMPLATE = """#!/bin/bash
{{ header }}
# Quick resource overview for small VPS hosts

echo "=== Memory ==="
free -h
echo
echo "=== Swap devices ==="
swapon --show
echo
echo "=== zram ==="
if command -v zramctl >/dev/null 2>&1; then
    zramctl
else
    echo "zramctl not available"
fi
echo
echo "=== Disk ==="
df -h /
echo
echo "=== Load ==="
uptime
echo
echo "=== Top memory consumers ==="
ps aux --sort=-%mem | head -n 6
echo
echo "swappiness: $(cat /proc/sys/vm/swappiness)"
"""

DOCKER_STATUS_TEMPLATE = """#!/bin/bash
{{ header }}
# Docker status overview

if ! command -v docker >/dev/null 2>&1; then
    echo "docker is not installed"
    exit 1
fi

echo "=== Docker service ==="
systemctl is-active docker
echo
echo "=== Containers ==="
docker ps --format "table {{ '{{' }}.Names{{ '}}' }}\\t{{ '{{' }}.Status{{ '}}' }}\\t{{ '{{' }}.Ports{{ '}}' }}"
echo
echo "=== Resource usage ==="
docker stats --no-stream --format "table {{ '{{' }}.Name{{ '}}' }}\\t{{ '{{' }}.CPUPerc{{ '}}' }}\\t{{ '{{' }}.MemUsage{{ '}}' }}"
echo
echo "=== Disk usage ==="
docker system df
"""

COMPOSE_TEMPLATE = """{{ header }}
# Example stack sized for a 2 CPU / 2GB RAM host.
# Copy this directory and adjust services as needed.
services:
  app:
    image: nginx:alpine
    restart: unless-stopped
    ports:
      - "80:80"
    env_file:
      - .env
    deploy:
      resources:
        limits:
          cpus: "0.50"
          memory: 256M
        reservations:
          memory: 64M
    logging:
      driver: json-file
      options:
        max-size: "{{ log_max_size }}"
        max-file: "{{ log_max_file }}"

  redis:
    image: redis:7-alpine
    restart: unless-stopped
    command: ["redis-server", "--maxmemory", "128mb", "--maxmemory-policy", "allkeys-lru"]
    deploy:
      resources:
        limits:
          cpus: "0.25"
          memory: 160M
    logging:
      driver: json-file
      options:
        max-size: "{{ log_max_size }}"
        max-file: "{{ log_max_file }}"
"""

ENV_EXAMPLE_TEMPLATE = """{{ header }}
# Environment variables for docker-compose.yml
TZ=UTC
"""

TEMPLATE_README = """# Docker templates

Resource-limited Compose stack for a 2 CPU / 2GB RAM VPS.

    cp .env.example .env
    docker-compose up -d
    docker-compose ps

Keep the sum of `memory` limits well under the physical RAM; zram and the
{{ swap_size_mb }}MB swap file are a safety net, not extra capacity.
"""


def render(template: str, **context: Any) -> str:
    """템플릿 렌더링 (공통 헤더 포함)"""
    context.setdefault("header", HEADER)
    return Template(template, keep_trailing_newline=True).render(**context)


def render_daemon_json(log_max_size: str, log_max_file: int) -> str:
    """Docker daemon.json 생성"""
    data: Dict[str, Any] = {
        "log-driver": "json-file",
        "log-opts": {
            "max-size": log_max_size,
            "max-file": str(log_max_file),
        },
        "storage-driver": "overlay2",
        "live-restore": True,
    }
    return json.dumps(data, indent=2) + "\n"
