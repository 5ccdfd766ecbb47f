"""
gcp_workload_identity
---------------------

환경별 Workload Identity Pool / OIDC Provider 구성과 서비스 계정 impersonation 권한 부여.

GitHub identity 가 `owner/repo` 이면 repo 단위, `owner` 이면 owner 단위로 신뢰한다.
이 판정은 provider 의 attribute condition 과 impersonation principal set 양쪽에서
같은 함수(`github_attribute_name`)를 거쳐야 한다.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from . import gcp_probes
from .config import is_repository_identity
from .constants import (
    DEVELOPER_ATTRIBUTE_CONDITION,
    DEVELOPER_ATTRIBUTE_MAPPING,
    DEVELOPER_ENVIRONMENT,
    DEVELOPER_ISSUER_URI,
    DEVELOPER_PROVIDER_ID,
    ENVIRONMENTS,
    GITHUB_ATTRIBUTE_MAPPING,
    GITHUB_ISSUER_URI,
    GITHUB_PROVIDER_ID,
    WIF_LOCATION,
    WORKLOAD_IDENTITY_USER_ROLE,
)
from .gcp_probes import ProbeState
from .logging_utils import get_logger
from .subprocess_utils import execute, execute_create


logger = get_logger(__name__)


def pool_id(prefix: str, env: str) -> str:
    return f"{prefix}-{env}-pool"


def github_attribute_name(github_identity: str) -> str:
    return "repository" if is_repository_identity(github_identity) else "repository_owner"


def github_attribute_condition(github_identity: str) -> str:
    return f"assertion.{github_attribute_name(github_identity)} == '{github_identity}'"


def _pool_path(project_number: str, pool: str) -> str:
    return f"projects/{project_number}/locations/{WIF_LOCATION}/workloadIdentityPools/{pool}"


def provider_audience(project_number: str, pool: str, provider_id: str) -> str:
    return f"https://iam.googleapis.com/{_pool_path(project_number, pool)}/providers/{provider_id}"


def github_principal_set(project_number: str, pool: str, github_identity: str) -> str:
    attr = github_attribute_name(github_identity)
    return f"principalSet://iam.googleapis.com/{_pool_path(project_number, pool)}/attribute.{attr}/{github_identity}"


def developer_principal_set(project_number: str, pool: str, developer_identity: str) -> str:
    return f"principalSet://iam.googleapis.com/{_pool_path(project_number, pool)}/attribute.email/{developer_identity}"


def provider_resource_path(project_id: str, pool: str, provider_id: str = GITHUB_PROVIDER_ID) -> str:
    """결과/secrets 에 넘기는 provider 전체 경로 (프로젝트 ID 기준)."""
    return f"projects/{project_id}/locations/{WIF_LOCATION}/workloadIdentityPools/{pool}/providers/{provider_id}"


def _ensure_pool(prefix: str, env: str, project_id: str, *, timeout: Optional[float]) -> bool:
    pid = pool_id(prefix, env)
    state = gcp_probes.identity_pool_exists(project_id, pid, timeout=timeout)
    if state is ProbeState.PRESENT:
        logger.info("기존 Workload Identity Pool 을 사용합니다: %s", pid)
        return False

    logger.info("Workload Identity Pool 생성: %s", pid)
    return execute_create(
        [
            "gcloud",
            "iam",
            "workload-identity-pools",
            "create",
            pid,
            f"--project={project_id}",
            f"--location={WIF_LOCATION}",
            f"--display-name={prefix}-{env}-pool",
            f"--description=Pool for {prefix}-{env} environment",
        ],
        f"Create Pool: {pid}",
        tolerate_existing=state is ProbeState.UNKNOWN,
        timeout=timeout,
    )


def _ensure_provider(
    project_id: str,
    project_number: str,
    pool: str,
    provider_id: str,
    *,
    issuer_uri: str,
    display_name: str,
    description: str,
    attribute_mapping: str,
    attribute_condition: str,
    step: str,
    timeout: Optional[float],
) -> bool:
    state = gcp_probes.identity_provider_exists(project_id, pool, provider_id, timeout=timeout)
    if state is ProbeState.PRESENT:
        logger.info("기존 provider 를 사용합니다: %s/%s", pool, provider_id)
        return False

    logger.info("OIDC provider 생성: %s/%s", pool, provider_id)
    return execute_create(
        [
            "gcloud",
            "iam",
            "workload-identity-pools",
            "providers",
            "create-oidc",
            provider_id,
            f"--project={project_id}",
            f"--workload-identity-pool={pool}",
            f"--location={WIF_LOCATION}",
            f"--issuer-uri={issuer_uri}",
            f"--allowed-audiences={provider_audience(project_number, pool, provider_id)}",
            f"--display-name={display_name}",
            f"--description={description}",
            f"--attribute-mapping={attribute_mapping}",
            f"--attribute-condition={attribute_condition}",
        ],
        step,
        tolerate_existing=state is ProbeState.UNKNOWN,
        timeout=timeout,
    )


def ensure_identity_pools(
    prefix: str,
    project_id: str,
    project_number: str,
    github_identity: str,
    *,
    environments: Optional[List[str]] = None,
    timeout: Optional[float] = None,
) -> List[str]:
    """
    환경별 pool 과 GitHub Actions provider 를 준비한다. dev 에는 로컬 개발자 provider 도 추가한다.

    Returns:
        이번 실행에서 새로 만든 리소스 이름 목록
    """
    created: List[str] = []
    condition = github_attribute_condition(github_identity)

    for env in environments or ENVIRONMENTS:
        pid = pool_id(prefix, env)
        if _ensure_pool(prefix, env, project_id, timeout=timeout):
            created.append(f"pool:{pid}")

        if _ensure_provider(
            project_id,
            project_number,
            pid,
            GITHUB_PROVIDER_ID,
            issuer_uri=GITHUB_ISSUER_URI,
            display_name="GitHub Actions Provider",
            description="Provider for GitHub Actions",
            attribute_mapping=GITHUB_ATTRIBUTE_MAPPING,
            attribute_condition=condition,
            step=f"Create GitHub Provider for Pool: {pid}",
            timeout=timeout,
        ):
            created.append(f"provider:{pid}/{GITHUB_PROVIDER_ID}")

        if env == DEVELOPER_ENVIRONMENT and _ensure_provider(
            project_id,
            project_number,
            pid,
            DEVELOPER_PROVIDER_ID,
            issuer_uri=DEVELOPER_ISSUER_URI,
            display_name="Local Developer Provider",
            description="Provider for Local Developers",
            attribute_mapping=DEVELOPER_ATTRIBUTE_MAPPING,
            attribute_condition=DEVELOPER_ATTRIBUTE_CONDITION,
            step=f"Create Local Developer Provider for Pool: {pid}",
            timeout=timeout,
        ):
            created.append(f"provider:{pid}/{DEVELOPER_PROVIDER_ID}")

    return created


def _bind_workload_identity_user(
    sa_email: str,
    project_id: str,
    member: str,
    step: str,
    *,
    timeout: Optional[float],
) -> None:
    execute(
        [
            "gcloud",
            "iam",
            "service-accounts",
            "add-iam-policy-binding",
            sa_email,
            f"--project={project_id}",
            f"--role={WORKLOAD_IDENTITY_USER_ROLE}",
            f"--member={member}",
        ],
        step,
        timeout=timeout,
    )


def grant_impersonation(
    prefix: str,
    project_id: str,
    project_number: str,
    sa_email: str,
    github_identity: str,
    developer_identity: str,
    *,
    environments: Optional[List[str]] = None,
    timeout: Optional[float] = None,
) -> None:
    """
    각 pool 의 GitHub principal set 에 workloadIdentityUser 를 부여한다.
    dev pool 은 개발자 identity principal set 에도 부여한다. 바인딩은 멱등하므로 항상 적용한다.
    """
    for env in environments or ENVIRONMENTS:
        pid = pool_id(prefix, env)
        _bind_workload_identity_user(
            sa_email,
            project_id,
            github_principal_set(project_number, pid, github_identity),
            f"Grant Impersonation for Pool: {pid}",
            timeout=timeout,
        )
        if env == DEVELOPER_ENVIRONMENT:
            _bind_workload_identity_user(
                sa_email,
                project_id,
                developer_principal_set(project_number, pid, developer_identity),
                "Grant Impersonation for Local Developer",
                timeout=timeout,
            )


def provider_paths(prefix: str, project_id: str, environments: Optional[List[str]] = None) -> Dict[str, str]:
    return {
        env: provider_resource_path(project_id, pool_id(prefix, env))
        for env in environments or ENVIRONMENTS
    }
