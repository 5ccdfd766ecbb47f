"""
logging_utils
-------------

CLI / MCP 서버 공통 로깅 설정.

stdout 은 `setup` 결과 JSON 과 JSON-RPC 응답 전용 채널이라,
로그 핸들러는 기본적으로 stderr 에 붙인다. 테스트는 stream 을 넘겨 캡처할 수 있다.
"""

import logging
import sys
from typing import Optional, TextIO


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def level_for(verbosity: int) -> int:
    """-v 횟수를 로그 레벨로. 한 번 이상이면 DEBUG (명령 stdout/stderr 까지 출력)."""
    return logging.DEBUG if verbosity >= 1 else logging.INFO


def setup_logging(verbosity: int = 0, stream: Optional[TextIO] = None) -> None:
    logging.basicConfig(
        level=level_for(verbosity),
        format=LOG_FORMAT,
        stream=stream or sys.stderr,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
