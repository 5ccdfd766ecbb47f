"""
gcp_project
-----------

foundation 프로젝트 자체를 담당하는 모듈.
프로젝트 생성(또는 재사용), 빌링 연결, 프로젝트 번호 조회, 필수 API enable.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from . import gcp_probes
from .config import FoundationRequest
from .constants import REQUIRED_APIS
from .gcp_probes import ProbeState
from .logging_utils import get_logger
from .subprocess_utils import execute, execute_create


logger = get_logger(__name__)


@dataclass(frozen=True)
class ProjectResolution:
    project_id: str
    created: bool


def new_project_id(prefix: str, timestamp: int) -> str:
    return f"{prefix}-fdn-{timestamp}"


def ensure_project(
    req: FoundationRequest,
    *,
    clock: Callable[[], float] = time.time,
    timeout: Optional[float] = None,
) -> ProjectResolution:
    """
    같은 prefix 의 foundation 프로젝트가 이미 있으면 재사용하고,
    없으면 `{prefix}-fdn-{unix timestamp}` 로 새로 만든다.
    """
    listing = gcp_probes.list_existing_projects(timeout=timeout)
    existing = gcp_probes.find_foundation_project(req.project_name, listing.project_ids)
    if existing:
        logger.info("기존 foundation 프로젝트를 사용합니다: %s", existing)
        return ProjectResolution(project_id=existing, created=False)

    if listing.state is ProbeState.UNKNOWN:
        logger.warning(
            "프로젝트 목록을 확인하지 못해 새 프로젝트를 생성합니다. 중복 프로젝트가 생길 수 있습니다: prefix=%s",
            req.project_name,
        )

    project_id = new_project_id(req.project_name, int(clock()))
    logger.info("GCP 프로젝트 생성: %s (org=%s)", project_id, req.org_id)
    execute_create(
        [
            "gcloud",
            "projects",
            "create",
            project_id,
            f"--name={req.project_name}-fdn",
            f"--organization={req.org_id}",
            "--set-as-default",
        ],
        "Create GCP Project",
        timeout=timeout,
    )
    return ProjectResolution(project_id=project_id, created=True)


def ensure_billing_link(
    project_id: str,
    billing_account: str,
    *,
    timeout: Optional[float] = None,
) -> bool:
    """빌링 계정이 연결되어 있지 않으면 연결한다. 새로 연결했으면 True."""
    state = gcp_probes.is_billing_linked(project_id, billing_account, timeout=timeout)
    if state is ProbeState.PRESENT:
        logger.info("빌링 계정이 이미 연결되어 있습니다: %s -> %s", project_id, billing_account)
        return False

    logger.info("빌링 계정 연결: %s -> %s", project_id, billing_account)
    # link 는 재실행해도 같은 결과이므로 UNKNOWN 이어도 그대로 실행한다.
    execute(
        [
            "gcloud",
            "billing",
            "projects",
            "link",
            project_id,
            f"--billing-account={billing_account}",
        ],
        "Link Billing",
        timeout=timeout,
    )
    return True


def get_project_number(project_id: str, *, timeout: Optional[float] = None) -> str:
    """
    provider audience 문자열에 필요한 숫자형 프로젝트 번호.
    항상 조회하며 실패하거나 비어 있으면 전체 실행이 중단된다.
    """
    number = execute(
        [
            "gcloud",
            "projects",
            "describe",
            project_id,
            "--format=value(projectNumber)",
        ],
        "Get Project Number",
        require_output=True,
        timeout=timeout,
    )
    logger.info("프로젝트 번호: %s (%s)", number, project_id)
    return number


def enable_apis(
    project_id: str,
    apis: Optional[List[str]] = None,
    *,
    timeout: Optional[float] = None,
) -> None:
    """
    필수 API 를 enable 한다. 이미 enable 된 API 는 원격에서 no-op 이므로 확인 없이 호출한다.
    """
    targets = list(apis or REQUIRED_APIS)
    logger.info("다음 API 들을 활성화합니다: %s", targets)
    for api in targets:
        execute(
            ["gcloud", "services", "enable", api, f"--project={project_id}"],
            f"Enable API: {api}",
            timeout=timeout,
        )
