from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from dotenv import load_dotenv

from .logging_utils import get_logger


logger = get_logger(__name__)


ENV_FILES_DEFAULT_ORDER = [".env", ".env.foundation", ".env.secrets"]

# (dataclass 필드, 환경변수, 요청 payload 키) - 순서가 positional 인자 순서다.
REQUEST_FIELDS = [
    ("project_name", "GCP_TOOLS_PROJECT_NAME", "projectName"),
    ("org_id", "GCP_TOOLS_ORG_ID", "orgId"),
    ("billing_account", "GCP_TOOLS_BILLING_ACCOUNT", "billingAccount"),
    ("regions", "GCP_TOOLS_REGIONS", "regions"),
    ("github_identity", "GCP_TOOLS_GITHUB_IDENTITY_SPECIFIER", "githubIdentity"),
    ("developer_identity", "GCP_TOOLS_DEVELOPER_IDENTITY_SPECIFIER", "developerIdentity"),
    ("owner_emails", "GCP_TOOLS_OWNER_EMAILS", "ownerEmails"),
]

COMMAND_TIMEOUT_ENV = "GCP_TOOLS_COMMAND_TIMEOUT"


class ConfigValidationError(ValueError):
    """필수 입력값이 비어 있을 때. 원격 호출 전에 발생한다."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        super().__init__("필수 입력값이 누락되었습니다: " + ", ".join(self.missing))


def load_env_files(base_dir: str = ".", files: Optional[Sequence[str]] = None) -> List[str]:
    """
    base_dir 의 .env / .env.foundation / .env.secrets 를 이 순서로 읽어 os.environ 에 반영한다.
    뒤에 읽은 파일이 같은 키를 덮어쓴다. 실제로 읽은 파일 경로 목록을 돌려준다.
    """
    loaded: List[str] = []
    for name in files or ENV_FILES_DEFAULT_ORDER:
        path = os.path.join(base_dir, name)
        if not os.path.isfile(path):
            continue
        load_dotenv(path, override=True)
        loaded.append(path)
    logger.debug("env 파일 로드: %s", loaded or "(없음)")
    return loaded


def split_csv(raw: Any) -> List[str]:
    """'a, b,,c' 또는 리스트를 공백/빈 항목 없는 리스트로 정규화한다."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        items = [str(v) for v in raw]
    else:
        items = str(raw).split(",")
    return [v.strip() for v in items if v and v.strip()]


def is_repository_identity(identity: str) -> bool:
    """'owner/repo' 형태면 repo 단위 신뢰, 아니면 owner 단위 신뢰."""
    return "/" in identity


def command_timeout_from_env() -> Optional[float]:
    raw = os.getenv(COMMAND_TIMEOUT_ENV)
    if raw is None or raw.strip() == "":
        return None
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigValidationError([COMMAND_TIMEOUT_ENV]) from e


@dataclass(frozen=True)
class FoundationRequest:
    project_name: str
    org_id: str
    billing_account: str
    regions: List[str]
    github_identity: str
    developer_identity: str
    owner_emails: List[str] = field(default_factory=list)

    @property
    def default_region(self) -> str:
        return self.regions[0]

    @property
    def repository_scoped(self) -> bool:
        return is_repository_identity(self.github_identity)

    @classmethod
    def from_values(cls, **raw: Any) -> "FoundationRequest":
        """
        문자열/리스트 원시값을 정규화하고 검증한다.
        누락된 필드는 한 번에 모아서 ConfigValidationError 로 보고한다.
        """
        missing: List[str] = []
        values: dict[str, Any] = {}
        for name, _env, _key in REQUEST_FIELDS:
            val = raw.get(name)
            if name in ("regions", "owner_emails"):
                items = split_csv(val)
                if not items:
                    missing.append(name)
                values[name] = items
            else:
                text = (str(val) if val is not None else "").strip()
                if not text:
                    missing.append(name)
                values[name] = text

        if missing:
            raise ConfigValidationError(missing)

        return cls(**values)

    @classmethod
    def from_env(cls, argv: Sequence[str] = ()) -> "FoundationRequest":
        # 환경변수가 비어 있으면 같은 순번의 positional 인자를 사용한다.
        raw: dict[str, Any] = {}
        for idx, (name, env_name, _key) in enumerate(REQUEST_FIELDS):
            val = os.getenv(env_name)
            if not val and idx < len(argv):
                val = argv[idx]
            raw[name] = val
        try:
            return cls.from_values(**raw)
        except ConfigValidationError as e:
            env_names = {n: env for n, env, _ in REQUEST_FIELDS}
            raise ConfigValidationError([env_names[m] for m in e.missing]) from None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "FoundationRequest":
        """요청 핸들러 payload (camelCase 키) 를 변환한다."""
        raw: dict[str, Any] = {}
        for name, _env, key in REQUEST_FIELDS:
            raw[name] = data.get(key)
        # 구버전 클라이언트는 단수형 region 을 보낸다.
        if not raw["regions"] and data.get("region"):
            raw["regions"] = data.get("region")
        try:
            return cls.from_values(**raw)
        except ConfigValidationError as e:
            keys = {n: key for n, _env, key in REQUEST_FIELDS}
            raise ConfigValidationError([keys[m] for m in e.missing]) from None
