"""
VPS Optimizer
2 CPU / 2GB RAM VPS를 컨테이너 워크로드용으로 설정하는 프로비저닝 도구

Features:
- Docker 및 Docker Compose 자동 설치
- zram 압축 스왑 + 디스크 스왑 파일 구성 (3단계 폴백)
- 커널 파라미터 튜닝, 불필요한 서비스 비활성화, 로그 로테이션
- idempotent 단계 실행 및 사후 검증 리포트
- 선택적 방화벽 / SSH 하드닝 / fail2ban
"""

__version__ = "1.1.0"
__author__ = "DevOps Team"
