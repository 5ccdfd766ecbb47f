from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from . import gcp_gcs, gcp_iam, gcp_probes, gcp_project, gcp_workload_identity
from .config import FoundationRequest, split_csv
from .constants import (
    DEVELOPER_ENVIRONMENT,
    DEVELOPER_PROVIDER_ID,
    ENVIRONMENTS,
    GITHUB_PROVIDER_ID,
    ORG_ROLES,
    PROJECT_ROLES,
    REQUIRED_APIS,
)
from .gcp_probes import ProbeState
from .logging_utils import get_logger


logger = get_logger(__name__)

# 단계 이름 (로그/요약 출력용)
STEPS: List[str] = [
    "project",
    "billing",
    "project-number",
    "apis",
    "service-account",
    "project-roles",
    "org-roles",
    "identity-pools",
    "impersonation",
    "state-bucket",
]


@dataclass
class FoundationResult:
    project_id: str
    project_number: str
    service_account: str
    workload_identity_providers: Dict[str, str]
    terraform_state_bucket: str
    region: str
    regions: List[str]
    org_id: str
    billing_account: str
    github_identity: str
    developer_identity: str
    owner_emails: List[str]
    # 이번 실행에서 새로 만든 리소스. 요약/로그용이며 결과 비교와 JSON 에는 포함되지 않는다.
    created: List[str] = field(default_factory=list, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": self.project_id,
            "projectNumber": self.project_number,
            "serviceAccount": self.service_account,
            "workloadIdentityProviders": dict(self.workload_identity_providers),
            "terraformStateBucket": self.terraform_state_bucket,
            "region": self.region,
            "regions": list(self.regions),
            "orgId": self.org_id,
            "billingAccount": self.billing_account,
            "githubIdentity": self.github_identity,
            "developerIdentity": self.developer_identity,
            "ownerEmails": list(self.owner_emails),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FoundationResult":
        """setup 결과 JSON (camelCase) 을 다시 읽는다. secrets 설정 단계 입력용."""
        regions = split_csv(data.get("regions") or data.get("region"))
        return cls(
            project_id=str(data["projectId"]),
            project_number=str(data["projectNumber"]),
            service_account=str(data["serviceAccount"]),
            workload_identity_providers=dict(data["workloadIdentityProviders"]),
            terraform_state_bucket=str(data["terraformStateBucket"]),
            region=str(data.get("region") or (regions[0] if regions else "")),
            regions=regions,
            org_id=str(data.get("orgId", "")),
            billing_account=str(data.get("billingAccount", "")),
            github_identity=str(data.get("githubIdentity", "")),
            developer_identity=str(data.get("developerIdentity", "")),
            owner_emails=split_csv(data.get("ownerEmails")),
        )


def setup_foundation_project(
    req: FoundationRequest,
    *,
    clock: Callable[[], float] = time.time,
    timeout: Optional[float] = None,
) -> FoundationResult:
    """
    foundation 프로젝트를 처음부터 끝까지 순서대로 구성한다.

    각 단계는 probe 로 기존 리소스를 확인한 뒤 없을 때만 생성하므로,
    실패 후에는 같은 요청으로 전체를 다시 실행하면 된다.
    어떤 단계든 실패하면 StepExecutionFailure 가 그대로 전파되고 이후 단계는 실행되지 않는다.
    """
    created: List[str] = []
    prefix = req.project_name

    # 1) 프로젝트
    logger.info("=== Step 1: GCP 프로젝트 확인/생성 (prefix=%s) ===", prefix)
    resolution = gcp_project.ensure_project(req, clock=clock, timeout=timeout)
    project_id = resolution.project_id
    if resolution.created:
        created.append(f"project:{project_id}")

    # 2) 빌링
    logger.info("=== Step 2: 빌링 계정 연결 (%s) ===", req.billing_account)
    if gcp_project.ensure_billing_link(project_id, req.billing_account, timeout=timeout):
        created.append(f"billing:{req.billing_account}")

    # 3) 프로젝트 번호 (항상 조회)
    project_number = gcp_project.get_project_number(project_id, timeout=timeout)

    # 4) API
    logger.info("=== Step 3: 필수 API 활성화 ===")
    gcp_project.enable_apis(project_id, timeout=timeout)

    # 5) 서비스 계정
    logger.info("=== Step 4: 서비스 계정 확인/생성 ===")
    sa_email, sa_created = gcp_iam.ensure_service_account(prefix, project_id, timeout=timeout)
    if sa_created:
        created.append(f"service-account:{sa_email}")

    # 6) 프로젝트 역할
    logger.info("=== Step 5: 프로젝트 수준 IAM 역할 부여 ===")
    gcp_iam.ensure_project_roles(project_id, sa_email, timeout=timeout)

    # 7) 조직/빌링 역할
    logger.info("=== Step 6: 조직 수준 IAM 역할 부여 ===")
    gcp_iam.ensure_org_roles(req.org_id, req.billing_account, sa_email, timeout=timeout)

    # 8) Workload Identity
    logger.info("=== Step 7: Workload Identity Pool / Provider 구성 ===")
    created += gcp_workload_identity.ensure_identity_pools(
        prefix,
        project_id,
        project_number,
        req.github_identity,
        timeout=timeout,
    )

    # 9) impersonation
    logger.info("=== Step 8: 서비스 계정 impersonation 권한 부여 ===")
    gcp_workload_identity.grant_impersonation(
        prefix,
        project_id,
        project_number,
        sa_email,
        req.github_identity,
        req.developer_identity,
        timeout=timeout,
    )

    # 10) state 버킷
    logger.info("=== Step 9: Terraform state 버킷 (%s) ===", req.default_region)
    bucket_name, bucket_created = gcp_gcs.ensure_state_bucket(
        project_id, req.default_region, timeout=timeout
    )
    if bucket_created:
        created.append(f"bucket:{bucket_name}")

    result = FoundationResult(
        project_id=project_id,
        project_number=project_number,
        service_account=sa_email,
        workload_identity_providers=gcp_workload_identity.provider_paths(prefix, project_id),
        terraform_state_bucket=bucket_name,
        region=req.default_region,
        regions=list(req.regions),
        org_id=req.org_id,
        billing_account=req.billing_account,
        github_identity=req.github_identity,
        developer_identity=req.developer_identity,
        owner_emails=list(req.owner_emails),
        created=created,
    )
    logger.info(
        "foundation 프로젝트 구성 완료: %s (새로 생성: %s)",
        project_id,
        ", ".join(created) if created else "없음",
    )
    return result


def format_summary(result: FoundationResult) -> str:
    lines: List[str] = []
    lines.append("# Foundation summary")
    lines.append(f"- project: {result.project_id} ({result.project_number})")
    lines.append(f"- service account: {result.service_account}")
    lines.append(f"- state bucket: gs://{result.terraform_state_bucket} ({result.region})")
    lines.append("")

    lines.append("## Workload identity providers")
    for env, path in result.workload_identity_providers.items():
        lines.append(f"- {env}: {path}")

    lines.append("")
    lines.append("## Created in this run")
    if result.created:
        for name in result.created:
            lines.append(f"- {name}")
    else:
        lines.append("- (none)")

    return "\n".join(lines)


def plan_foundation_project(req: FoundationRequest) -> str:
    """
    요청으로부터 만들어질 이름과 적용될 설정을 요약한다. 실제 GCP 호출은 하지 않는다.
    """
    prefix = req.project_name
    project_pattern = gcp_probes.foundation_project_pattern(prefix).pattern
    sa_pattern = gcp_iam.service_account_email(prefix, "<projectId>")

    lines: List[str] = []
    lines.append("# Foundation plan")
    lines.append(f"- prefix: {prefix}")
    lines.append(f"- org: {req.org_id}")
    lines.append(f"- billing account: {req.billing_account}")
    lines.append(f"- regions: {', '.join(req.regions)} (default: {req.default_region})")
    lines.append(f"- owner emails: {', '.join(req.owner_emails)}")
    lines.append("")

    lines.append("## Names")
    lines.append(f"- project: reuse `{project_pattern}` or create {prefix}-fdn-<timestamp>")
    lines.append(f"- service account: {sa_pattern}")
    lines.append(f"- state bucket: {gcp_gcs.state_bucket_name('<projectId>')}")
    lines.append("")

    scope = "repository" if req.repository_scoped else "owner"
    lines.append(f"## Workload identity ({scope} scoped: {req.github_identity})")
    lines.append(f"- attribute condition: {gcp_workload_identity.github_attribute_condition(req.github_identity)}")
    for env in ENVIRONMENTS:
        pool = gcp_workload_identity.pool_id(prefix, env)
        providers = [GITHUB_PROVIDER_ID]
        if env == DEVELOPER_ENVIRONMENT:
            providers.append(DEVELOPER_PROVIDER_ID)
        lines.append(f"- {env}: {pool} ({', '.join(providers)})")
    lines.append(
        "- principal set: "
        + gcp_workload_identity.github_principal_set("<projectNumber>", "<pool>", req.github_identity)
    )
    lines.append(
        f"- developer principal ({DEVELOPER_ENVIRONMENT}): "
        + gcp_workload_identity.developer_principal_set("<projectNumber>", "<pool>", req.developer_identity)
    )
    lines.append("")

    lines.append(f"## APIs ({len(REQUIRED_APIS)})")
    for api in REQUIRED_APIS:
        lines.append(f"- {api}")
    lines.append("")
    lines.append(f"## Project roles ({len(PROJECT_ROLES)})")
    for role in PROJECT_ROLES:
        lines.append(f"- {role}")
    lines.append("")
    lines.append(f"## Org roles ({len(ORG_ROLES)} + billing.user)")
    for role in ORG_ROLES:
        lines.append(f"- {role}")

    return "\n".join(lines)


def _status_line(label: str, state: ProbeState) -> str:
    if state is ProbeState.PRESENT:
        return f"{label}: 존재함"
    if state is ProbeState.ABSENT:
        return f"{label}: 없음 (생성이 필요함)"
    return f"{label}: 확인 불가"


def check_foundation_project(req: FoundationRequest, show_all: bool = False) -> tuple[str, bool]:
    """
    리소스 생성 없이 probe 만 실행해 현재 상태를 점검한다.

    Returns:
        summary: 사람이 읽기 좋은 텍스트 요약
        has_issues: 없음/확인 불가 항목이 하나라도 있는지 여부
    """
    prefix = req.project_name
    results: List[tuple[str, ProbeState]] = []

    listing = gcp_probes.list_existing_projects()
    project_id = gcp_probes.find_foundation_project(prefix, listing.project_ids)
    if project_id:
        results.append((f"Project ({project_id})", ProbeState.PRESENT))
    elif listing.state is ProbeState.UNKNOWN:
        results.append((f"Project ({prefix}-fdn-*)", ProbeState.UNKNOWN))
    else:
        results.append((f"Project ({prefix}-fdn-*)", ProbeState.ABSENT))

    if project_id:
        sa_email = gcp_iam.service_account_email(prefix, project_id)
        bucket = gcp_gcs.state_bucket_name(project_id)
        results.append((
            f"Billing ({req.billing_account})",
            gcp_probes.is_billing_linked(project_id, req.billing_account),
        ))
        results.append((
            f"Service account ({sa_email})",
            gcp_probes.service_account_exists(project_id, sa_email),
        ))
        for env in ENVIRONMENTS:
            pool = gcp_workload_identity.pool_id(prefix, env)
            results.append((f"Pool ({pool})", gcp_probes.identity_pool_exists(project_id, pool)))
            providers = [GITHUB_PROVIDER_ID]
            if env == DEVELOPER_ENVIRONMENT:
                providers.append(DEVELOPER_PROVIDER_ID)
            for provider in providers:
                results.append((
                    f"Provider ({pool}/{provider})",
                    gcp_probes.identity_provider_exists(project_id, pool, provider),
                ))
        results.append((f"Bucket ({bucket})", gcp_probes.bucket_exists(bucket)))
    else:
        # 프로젝트가 없으면 하위 리소스도 없다.
        results.append(("Service account / pools / providers / bucket", ProbeState.ABSENT))

    lines: List[str] = []
    lines.append("# Foundation pre-check")
    lines.append(f"- prefix: {prefix}")
    lines.append(f"- region: {req.default_region}")
    lines.append("")

    issues = [(label, state) for label, state in results if state is not ProbeState.PRESENT]
    shown = results if show_all else issues

    lines.append("## Resources")
    if shown:
        for label, state in shown:
            lines.append(f"- {_status_line(label, state)}")
    else:
        lines.append("- (none)")

    lines.append("")
    lines.append("## Summary")
    if any(state is ProbeState.UNKNOWN for _label, state in issues):
        lines.append("- 상태: 확인 불가 항목이 있습니다. 권한/네트워크를 확인하세요.")
    elif issues:
        lines.append("- 상태: setup 실행 시 일부 리소스가 새로 생성됩니다.")
    else:
        lines.append("- 상태: 모든 리소스가 존재합니다 (재실행 시 새로 생성되는 리소스 없음)")

    return "\n".join(lines), bool(issues)
