"""
gcp_iam
-------

foundation 서비스 계정을 준비하고 프로젝트/조직/빌링 계정 수준의 IAM 역할을 부여하는 모듈.

역할 바인딩은 이미 가진 역할을 다시 추가해도 원격에서 멱등하므로 사전 확인 없이 적용한다.
"""

from __future__ import annotations

from typing import List, Optional

from . import gcp_probes
from .constants import BILLING_ROLE, ORG_ROLES, PROJECT_ROLES
from .gcp_probes import ProbeState
from .logging_utils import get_logger
from .subprocess_utils import execute, execute_create


logger = get_logger(__name__)


def service_account_name(prefix: str) -> str:
    return f"{prefix}-sa"


def service_account_email(prefix: str, project_id: str) -> str:
    return f"{service_account_name(prefix)}@{project_id}.iam.gserviceaccount.com"


def ensure_service_account(
    prefix: str,
    project_id: str,
    *,
    timeout: Optional[float] = None,
) -> tuple[str, bool]:
    """
    서비스 계정이 없으면 생성한다.

    Returns:
        (email, created)
    """
    name = service_account_name(prefix)
    email = service_account_email(prefix, project_id)

    state = gcp_probes.service_account_exists(project_id, email, timeout=timeout)
    if state is ProbeState.PRESENT:
        logger.info("기존 서비스 계정을 사용합니다: %s", email)
        return email, False

    logger.info("서비스 계정 생성: %s", email)
    created = execute_create(
        [
            "gcloud",
            "iam",
            "service-accounts",
            "create",
            name,
            f"--project={project_id}",
            f"--display-name={name}",
        ],
        "Create Service Account",
        tolerate_existing=state is ProbeState.UNKNOWN,
        timeout=timeout,
    )
    return email, created


def ensure_project_roles(
    project_id: str,
    sa_email: str,
    roles: Optional[List[str]] = None,
    *,
    timeout: Optional[float] = None,
) -> None:
    for role in roles or PROJECT_ROLES:
        execute(
            [
                "gcloud",
                "projects",
                "add-iam-policy-binding",
                project_id,
                f"--member=serviceAccount:{sa_email}",
                f"--role={role}",
            ],
            f"Assign Project Role: {role}",
            timeout=timeout,
        )


def ensure_org_roles(
    org_id: str,
    billing_account: str,
    sa_email: str,
    roles: Optional[List[str]] = None,
    *,
    timeout: Optional[float] = None,
) -> None:
    """
    조직 수준 역할들을 부여한 뒤 빌링 계정에 billing.user 를 부여한다.
    하나라도 실패하면 그 역할 이름이 담긴 StepExecutionFailure 로 즉시 중단된다.
    """
    for role in roles or ORG_ROLES:
        execute(
            [
                "gcloud",
                "organizations",
                "add-iam-policy-binding",
                org_id,
                f"--member=serviceAccount:{sa_email}",
                f"--role={role}",
            ],
            f"Assign Org Role: {role}",
            timeout=timeout,
        )

    execute(
        [
            "gcloud",
            "billing",
            "accounts",
            "add-iam-policy-binding",
            billing_account,
            f"--member=serviceAccount:{sa_email}",
            f"--role={BILLING_ROLE}",
        ],
        "Assign Billing Role",
        timeout=timeout,
    )
