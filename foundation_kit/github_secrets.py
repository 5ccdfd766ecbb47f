"""
github_secrets
--------------

foundation 결과를 GitHub 저장소의 environment secrets / repository secrets / variables 로
옮기는 모듈. `gh` CLI 를 사용한다.

environment 는 존재 여부를 확인한 뒤 없을 때만 만들고,
secret/variable 은 `gh ... set` 이 덮어쓰기이므로 항상 적용한다.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from .config import ConfigValidationError, is_repository_identity
from .constants import (
    ENV_SECRET_WORKLOAD_IDENTITY_PROVIDER,
    ENV_VARIABLE_ENVIRONMENT,
    ENVIRONMENTS,
    REPO_SECRET_BILLING_ACCOUNT,
    REPO_SECRET_ORG_ID,
    REPO_SECRET_PROJECT_ID,
    REPO_SECRET_PROJECT_NUMBER,
    REPO_SECRET_SERVICE_ACCOUNT,
    REPO_SECRET_STATE_BUCKET,
    REPO_VARIABLE_DEFAULT_REGION,
    REPO_VARIABLE_OWNER_EMAILS,
    REPO_VARIABLE_REGIONS,
)
from .gcp_probes import ProbeState, is_not_found
from .logging_utils import get_logger
from .orchestrator import FoundationResult
from .subprocess_utils import CommandError, execute, run_command


logger = get_logger(__name__)


def resolve_repository(result: FoundationResult, repository: Optional[str] = None) -> str:
    repo = (repository or "").strip()
    if repo:
        if not is_repository_identity(repo):
            raise ConfigValidationError(["repository"])
        return repo
    if is_repository_identity(result.github_identity):
        return result.github_identity
    # owner 단위 identity 는 어느 저장소에 넣을지 알 수 없다.
    raise ConfigValidationError(["repository"])


def repository_secrets(result: FoundationResult) -> Dict[str, str]:
    return {
        REPO_SECRET_SERVICE_ACCOUNT: result.service_account,
        REPO_SECRET_PROJECT_ID: result.project_id,
        REPO_SECRET_PROJECT_NUMBER: result.project_number,
        REPO_SECRET_ORG_ID: result.org_id,
        REPO_SECRET_BILLING_ACCOUNT: result.billing_account,
        REPO_SECRET_STATE_BUCKET: result.terraform_state_bucket,
    }


def repository_variables(result: FoundationResult) -> Dict[str, str]:
    return {
        REPO_VARIABLE_REGIONS: ",".join(result.regions),
        REPO_VARIABLE_DEFAULT_REGION: result.region,
        REPO_VARIABLE_OWNER_EMAILS: ",".join(result.owner_emails),
    }


def environment_exists(repo: str, env: str) -> ProbeState:
    try:
        run_command(["gh", "api", f"repos/{repo}/environments/{env}"])
    except CommandError as e:
        if e.returncode is not None and is_not_found(e):
            return ProbeState.ABSENT
        logger.warning("GitHub environment 상태를 확인하지 못했습니다 (생성을 시도합니다): %s", e)
        return ProbeState.UNKNOWN
    return ProbeState.PRESENT


def ensure_environment(repo: str, env: str) -> bool:
    if environment_exists(repo, env) is ProbeState.PRESENT:
        logger.info("기존 GitHub environment 를 사용합니다: %s (%s)", env, repo)
        return False
    # PUT 은 이미 있으면 갱신이므로 UNKNOWN 이어도 그대로 실행한다.
    execute(
        ["gh", "api", "--method", "PUT", f"repos/{repo}/environments/{env}"],
        f"Create GitHub Environment: {env}",
    )
    return True


def _set_secret(repo: str, name: str, value: str, env: Optional[str] = None) -> None:
    cmd = ["gh", "secret", "set", name, "--repo", repo]
    if env:
        cmd += ["--env", env]
    # 값은 stdin 으로 넘겨 명령 로그에 남지 않게 한다.
    execute(cmd, f"Set Secret: {name}" + (f" ({env})" if env else ""), input_text=value)


def _set_variable(repo: str, name: str, value: str, env: Optional[str] = None) -> None:
    cmd = ["gh", "variable", "set", name, "--repo", repo, "--body", value]
    if env:
        cmd += ["--env", env]
    execute(cmd, f"Set Variable: {name}" + (f" ({env})" if env else ""))


def setup_github_secrets(result: FoundationResult, repository: Optional[str] = None) -> Dict[str, object]:
    """
    foundation 결과를 GitHub 저장소에 반영한다.

    Returns:
        {repository, environmentsConfigured, secretsConfigured, variablesConfigured}
    """
    repo = resolve_repository(result, repository)
    logger.info("GitHub secrets 설정 시작: %s", repo)

    environments: List[str] = []
    secrets: List[str] = []
    variables: List[str] = []

    for env in ENVIRONMENTS:
        provider = result.workload_identity_providers.get(env)
        if not provider:
            logger.warning("%s 환경의 provider 경로가 없어 건너뜁니다.", env)
            continue
        ensure_environment(repo, env)
        environments.append(env)

        _set_secret(repo, ENV_SECRET_WORKLOAD_IDENTITY_PROVIDER, provider, env)
        secrets.append(f"{env}/{ENV_SECRET_WORKLOAD_IDENTITY_PROVIDER}")
        _set_variable(repo, ENV_VARIABLE_ENVIRONMENT, env, env)
        variables.append(f"{env}/{ENV_VARIABLE_ENVIRONMENT}")

    for name, value in repository_secrets(result).items():
        _set_secret(repo, name, value)
        secrets.append(name)

    for name, value in repository_variables(result).items():
        _set_variable(repo, name, value)
        variables.append(name)

    logger.info(
        "GitHub secrets 설정 완료: %s (environments=%d, secrets=%d, variables=%d)",
        repo,
        len(environments),
        len(secrets),
        len(variables),
    )
    return {
        "repository": repo,
        "environmentsConfigured": environments,
        "secretsConfigured": secrets,
        "variablesConfigured": variables,
    }
