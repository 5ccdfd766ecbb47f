"""
gcp_probes
----------

원격 GCP 상태를 읽기만 하는 존재 여부 확인 모듈.

모든 probe 는 예외를 던지지 않는다. 결과는 PRESENT / ABSENT / UNKNOWN 세 가지이며,
네트워크 오류나 권한 부족처럼 판단할 수 없는 경우는 UNKNOWN 으로 돌려주고 warning 을 남긴다.
UNKNOWN 이면 호출 측이 생성을 시도하고, 그 생성 명령의 "already exists" 오류가 최종 판정이 된다.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .constants import WIF_LOCATION
from .logging_utils import get_logger
from .subprocess_utils import CommandError, run_command


logger = get_logger(__name__)


# gcloud/gh 의 상태 표기만 본다. 리소스 이름 속 숫자 (404 등) 는 매칭되지 않아야 한다.
_NOT_FOUND_RE = re.compile(
    r"NOT_FOUND|NotFound|not found|does not exist|\bHTTP(?:Error)? 404\b",
    re.IGNORECASE,
)


class ProbeState(enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    UNKNOWN = "unknown"

    @property
    def exists(self) -> bool:
        return self is ProbeState.PRESENT


@dataclass(frozen=True)
class ProjectListing:
    state: ProbeState
    project_ids: List[str] = field(default_factory=list)


def is_not_found(err: CommandError) -> bool:
    return bool(_NOT_FOUND_RE.search(f"{err.stderr}\n{err.stdout}"))


def _probe(cmd: Sequence[str], what: str, *, timeout: float | None = None) -> tuple[ProbeState, str]:
    """
    describe/list 계열 명령을 실행하고 (상태, stdout) 을 돌려준다.
    exit 0 이면 PRESENT 로 보고, 세부 판정은 호출 측에서 stdout 으로 한다.
    """
    try:
        result = run_command(cmd, timeout=timeout)
    except CommandError as e:
        if e.returncode is not None and is_not_found(e):
            logger.debug("%s: 없음", what)
            return ProbeState.ABSENT, ""
        logger.warning("%s 상태를 확인하지 못했습니다 (생성을 시도합니다): %s", what, e)
        return ProbeState.UNKNOWN, ""
    return ProbeState.PRESENT, result.stdout.strip()


def list_existing_projects(*, timeout: float | None = None) -> ProjectListing:
    state, out = _probe(
        ["gcloud", "projects", "list", "--format=value(projectId)"],
        "프로젝트 목록",
        timeout=timeout,
    )
    if state is not ProbeState.PRESENT:
        return ProjectListing(state=state)
    ids = [line.strip() for line in out.splitlines() if line.strip()]
    return ProjectListing(state=ProbeState.PRESENT, project_ids=ids)


def foundation_project_pattern(prefix: str) -> "re.Pattern[str]":
    return re.compile(rf"^{re.escape(prefix)}-fdn(-\d+)?$")


def _project_timestamp(project_id: str, pattern: "re.Pattern[str]") -> int:
    m = pattern.match(project_id)
    if not m or not m.group(1):
        return 0
    return int(m.group(1)[1:])


def find_foundation_project(prefix: str, project_ids: Sequence[str]) -> Optional[str]:
    """
    `{prefix}-fdn` 또는 `{prefix}-fdn-<timestamp>` 형태의 기존 프로젝트를 찾는다.
    여러 개면 timestamp 가 가장 큰 것 (bare 형태는 0) 을 고른다.
    """
    pattern = foundation_project_pattern(prefix)
    matches = [pid for pid in project_ids if pattern.match(pid)]
    if not matches:
        return None
    if len(matches) > 1:
        logger.warning("재사용 가능한 프로젝트가 여러 개입니다: %s (가장 최근 것을 사용)", matches)
    return max(matches, key=lambda pid: (_project_timestamp(pid, pattern), pid))


def is_billing_linked(project_id: str, billing_account: str, *, timeout: float | None = None) -> ProbeState:
    state, out = _probe(
        [
            "gcloud",
            "billing",
            "projects",
            "describe",
            project_id,
            "--format=value(billingAccountName)",
        ],
        f"빌링 연결 ({project_id})",
        timeout=timeout,
    )
    if state is not ProbeState.PRESENT:
        return state
    # billingAccountName 은 "billingAccounts/XXXX-XXXX-XXXX" 형태
    linked = out.rsplit("/", 1)[-1]
    if linked and linked == billing_account.rsplit("/", 1)[-1]:
        return ProbeState.PRESENT
    return ProbeState.ABSENT


def service_account_exists(project_id: str, email: str, *, timeout: float | None = None) -> ProbeState:
    state, out = _probe(
        [
            "gcloud",
            "iam",
            "service-accounts",
            "list",
            f"--project={project_id}",
            "--format=value(email)",
        ],
        f"서비스 계정 ({email})",
        timeout=timeout,
    )
    if state is not ProbeState.PRESENT:
        return state
    emails = {line.strip().lower() for line in out.splitlines()}
    return ProbeState.PRESENT if email.lower() in emails else ProbeState.ABSENT


def bucket_exists(name: str, *, timeout: float | None = None) -> ProbeState:
    state, _out = _probe(
        ["gcloud", "storage", "buckets", "describe", f"gs://{name}", "--format=value(name)"],
        f"GCS 버킷 ({name})",
        timeout=timeout,
    )
    return state


def identity_pool_exists(project_id: str, pool_id: str, *, timeout: float | None = None) -> ProbeState:
    state, _out = _probe(
        [
            "gcloud",
            "iam",
            "workload-identity-pools",
            "describe",
            pool_id,
            f"--project={project_id}",
            f"--location={WIF_LOCATION}",
            "--format=value(name)",
        ],
        f"Workload Identity Pool ({pool_id})",
        timeout=timeout,
    )
    return state


def identity_provider_exists(
    project_id: str,
    pool_id: str,
    provider_id: str,
    *,
    timeout: float | None = None,
) -> ProbeState:
    state, _out = _probe(
        [
            "gcloud",
            "iam",
            "workload-identity-pools",
            "providers",
            "describe",
            provider_id,
            f"--project={project_id}",
            f"--location={WIF_LOCATION}",
            f"--workload-identity-pool={pool_id}",
            "--format=value(name)",
        ],
        f"Workload Identity Provider ({pool_id}/{provider_id})",
        timeout=timeout,
    )
    return state
