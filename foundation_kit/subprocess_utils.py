from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass
from textwrap import shorten
from typing import Mapping, Optional, Sequence

from .logging_utils import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    """
    외부 명령 실패 (exit != 0, 명령 없음, timeout).
    returncode 가 None 이면 프로세스가 정상 종료되지 못한 경우다.
    """

    def __init__(
        self,
        message: str,
        *,
        cmd: Sequence[str],
        returncode: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class StepExecutionFailure(RuntimeError):
    """
    프로비저닝 단계 실패. 전체 실행을 중단시키며 재시도/롤백은 하지 않는다.
    """

    def __init__(self, label: str, command: Sequence[str], cause: str) -> None:
        self.label = label
        self.command = " ".join(command)
        self.cause = cause
        super().__init__(f"단계 실패: {label}\n명령: {self.command}\n원인: {cause}")


def _detail(stdout: str, stderr: str) -> str:
    if stderr:
        return "\nstderr:\n" + shorten(stderr, width=2000)
    if stdout:
        return "\nstdout:\n" + shorten(stdout, width=2000)
    return ""


def run_command(
    cmd: Sequence[str],
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    input_text: str | None = None,
) -> RunResult:
    """
    subprocess 실행 공통 유틸.

    stdout/stderr 를 모두 캡처한다. 파이썬 쪽에는 출력 버퍼 상한이 없으므로
    대용량 목록 조회도 잘리지 않는다. 실패는 CommandError 로 래핑된다.
    """
    logger.info("명령 실행: %s", " ".join(cmd))
    try:
        result = subprocess.run(  # noqa: S603
            list(cmd),
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout,
            input=input_text,
            cwd=cwd,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError as e:
        raise CommandError(
            f"필요한 명령을 찾을 수 없습니다: {cmd[0]} (gcloud/gh 가 설치되어 있는지 확인하세요)",
            cmd=cmd,
        ) from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(
            f"명령 실행이 {timeout}초 안에 끝나지 않았습니다: {' '.join(cmd)}",
            cmd=cmd,
        ) from e
    except subprocess.CalledProcessError as e:
        stdout = (e.stdout or "").strip()
        stderr = (e.stderr or "").strip()
        raise CommandError(
            f"명령 실행 실패: {' '.join(cmd)} (exit={e.returncode}){_detail(stdout, stderr)}",
            cmd=cmd,
            returncode=e.returncode,
            stdout=stdout,
            stderr=stderr,
        ) from e

    if result.stdout:
        logger.debug("명령 stdout: %s", shorten(result.stdout.strip(), width=2000))
    if result.stderr:
        logger.debug("명령 stderr: %s", shorten(result.stderr.strip(), width=2000))
    return RunResult(returncode=result.returncode, stdout=result.stdout or "", stderr=result.stderr or "")


def execute(
    cmd: Sequence[str],
    step: str,
    *,
    require_output: bool = False,
    timeout: float | None = None,
    input_text: str | None = None,
) -> str:
    """
    프로비저닝 단계 하나를 실행하고 trim 된 stdout 을 돌려준다.

    - 성공했지만 stderr 가 있으면 warning 으로만 남긴다 (gcloud 는 진행 로그를 stderr 로 낸다)
    - 실패 또는 require_output 인데 출력이 비어 있으면 StepExecutionFailure
    """
    try:
        result = run_command(cmd, timeout=timeout, input_text=input_text)
    except CommandError as e:
        raise StepExecutionFailure(step, cmd, str(e)) from e

    if result.stderr.strip():
        logger.warning("[%s] stderr: %s", step, shorten(result.stderr.strip(), width=500))

    out = result.stdout.strip()
    if require_output and not out:
        raise StepExecutionFailure(step, cmd, "명령 출력이 비어 있습니다.")
    return out


# gcloud/gh 의 상태 표기만 본다. 리소스 이름 속 숫자 (409 등) 는 매칭되지 않아야 한다.
_ALREADY_EXISTS_RE = re.compile(
    r"ALREADY_EXISTS|already exists|\bHTTP(?:Error)? 409\b",
    re.IGNORECASE,
)


def is_already_exists(err: CommandError) -> bool:
    return bool(_ALREADY_EXISTS_RE.search(f"{err.stderr}\n{err.stdout}"))


def execute_create(
    cmd: Sequence[str],
    step: str,
    *,
    tolerate_existing: bool = False,
    timeout: float | None = None,
) -> bool:
    """
    리소스 생성 단계를 실행한다. 새로 만들었으면 True.

    tolerate_existing=True (사전 probe 가 UNKNOWN 이었던 경우) 이면
    "already exists" 오류를 건너뜀으로 처리하고 False 를 돌려준다.
    """
    try:
        execute(cmd, step, timeout=timeout)
    except StepExecutionFailure as e:
        cause = e.__cause__
        if tolerate_existing and isinstance(cause, CommandError):
            if is_already_exists(cause):
                logger.info("[%s] 이미 존재하여 건너뜁니다.", step)
                return False
        raise
    return True
