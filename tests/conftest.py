"""
pytest 설정:

로컬 작업 환경에 설치된 다른 버전의 foundation_kit 패키지가 존재할 때,
`pytest` 실행 시 site-packages 쪽이 먼저 import 되어 테스트가 깨질 수 있다.
테스트는 항상 현재 레포의 소스를 대상으로 해야 하므로, repo root 를 sys.path 최상단에 고정한다.

또한 gcloud / gh 를 흉내내는 상태 기반 fake 를 subprocess.run 자리에 끼워 넣어
전체 프로비저닝 흐름을 오프라인으로 돌릴 수 있게 한다.
"""

from __future__ import annotations

import os
import subprocess
import sys
from typing import Callable, Dict, List, Optional, Set, Tuple

import pytest


def pytest_configure() -> None:
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


def _flag(cmd: List[str], name: str) -> Optional[str]:
    prefix = f"--{name}="
    for part in cmd:
        if part.startswith(prefix):
            return part[len(prefix):]
    return None


def _opt(cmd: List[str], name: str) -> Optional[str]:
    # gh 스타일 "--repo value"
    flag = f"--{name}"
    if flag in cmd:
        idx = cmd.index(flag)
        if idx + 1 < len(cmd):
            return cmd[idx + 1]
    return None


NOT_FOUND = (1, "ERROR: (gcloud) NOT_FOUND: Requested entity was not found.")
ALREADY_EXISTS = (1, "ERROR: (gcloud) ALREADY_EXISTS: Requested entity already exists")


class FakeCloud:
    """gcloud / gh 명령을 해석해 메모리 상태를 바꾸는 fake."""

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.projects: Dict[str, str] = {}
        self.billing: Dict[str, str] = {}
        self.service_accounts: Dict[str, Set[str]] = {}
        self.pools: Set[Tuple[str, str]] = set()
        self.providers: Dict[Tuple[str, str, str], List[str]] = {}
        self.buckets: Dict[str, str] = {}
        self.bindings: List[Tuple[str, str, str, str]] = []
        self.enabled_apis: Set[Tuple[str, str]] = set()
        self.gh_environments: Set[Tuple[str, str]] = set()
        self.gh_secrets: Dict[Tuple[str, Optional[str], str], str] = {}
        self.gh_variables: Dict[Tuple[str, Optional[str], str], str] = {}
        self._failures: List[Tuple[Callable[[List[str]], bool], int, str]] = []

    # ------------------------------------------------------------------
    # 테스트 헬퍼
    # ------------------------------------------------------------------

    def fail_when(self, predicate: Callable[[List[str]], bool], stderr: str = "ERROR: PERMISSION_DENIED", returncode: int = 1) -> None:
        self._failures.append((predicate, returncode, stderr))

    def add_project(self, project_id: str, number: Optional[str] = None) -> str:
        if number is None:
            number = str(100000000000 + len(self.projects) + 1)
        self.projects[project_id] = number
        return number

    def mutating_calls(self) -> List[List[str]]:
        out = []
        for cmd in self.calls:
            if cmd[0] == "gcloud" and ("create" in cmd or "create-oidc" in cmd or "link" in cmd):
                out.append(cmd)
        return out

    def calls_matching(self, *words: str) -> List[List[str]]:
        return [c for c in self.calls if all(w in c for w in words)]

    # ------------------------------------------------------------------
    # subprocess.run 대체
    # ------------------------------------------------------------------

    def run(self, cmd, check=False, capture_output=False, text=False, timeout=None, input=None, cwd=None, env=None):  # noqa: A002, ANN001, ARG002
        cmd = list(cmd)
        self.calls.append(cmd)

        rc, out, err = 0, "", ""
        for predicate, f_rc, f_err in self._failures:
            if predicate(cmd):
                rc, err = f_rc, f_err
                break
        else:
            if cmd[0] == "gcloud":
                rc, out, err = self._gcloud(cmd[1:])
            elif cmd[0] == "gh":
                rc, out, err = self._gh(cmd[1:], input)
            else:
                raise FileNotFoundError(cmd[0])

        if check and rc != 0:
            raise subprocess.CalledProcessError(rc, cmd, output=out, stderr=err)
        return subprocess.CompletedProcess(cmd, rc, stdout=out, stderr=err)

    def _gcloud(self, a: List[str]) -> Tuple[int, str, str]:  # noqa: C901
        project = _flag(a, "project")

        if a[:2] == ["projects", "list"]:
            return 0, "\n".join(self.projects) + "\n", ""
        if a[:2] == ["projects", "create"]:
            if a[2] in self.projects:
                return ALREADY_EXISTS[0], "", ALREADY_EXISTS[1]
            self.add_project(a[2])
            return 0, "", "Create in progress for [https://cloudresourcemanager.googleapis.com/v1/projects/%s]." % a[2]
        if a[:2] == ["projects", "describe"]:
            if a[2] not in self.projects:
                return NOT_FOUND[0], "", NOT_FOUND[1]
            return 0, self.projects[a[2]] + "\n", ""
        if a[:2] in (["projects", "add-iam-policy-binding"], ["organizations", "add-iam-policy-binding"]):
            self.bindings.append((a[0], a[2], _flag(a, "member") or "", _flag(a, "role") or ""))
            return 0, "", "Updated IAM policy for %s [%s]." % (a[0][:-1], a[2])
        if a[:3] == ["billing", "projects", "describe"]:
            if a[3] not in self.projects:
                return NOT_FOUND[0], "", NOT_FOUND[1]
            linked = self.billing.get(a[3])
            return 0, (f"billingAccounts/{linked}\n" if linked else "\n"), ""
        if a[:3] == ["billing", "projects", "link"]:
            self.billing[a[3]] = _flag(a, "billing-account") or ""
            return 0, "", ""
        if a[:3] == ["billing", "accounts", "add-iam-policy-binding"]:
            self.bindings.append(("billing", a[3], _flag(a, "member") or "", _flag(a, "role") or ""))
            return 0, "", ""
        if a[:2] == ["services", "enable"]:
            self.enabled_apis.add((project or "", a[2]))
            return 0, "", ""
        if a[:3] == ["iam", "service-accounts", "list"]:
            return 0, "\n".join(sorted(self.service_accounts.get(project or "", set()))) + "\n", ""
        if a[:3] == ["iam", "service-accounts", "create"]:
            email = f"{a[3]}@{project}.iam.gserviceaccount.com"
            accounts = self.service_accounts.setdefault(project or "", set())
            if email in accounts:
                return ALREADY_EXISTS[0], "", ALREADY_EXISTS[1]
            accounts.add(email)
            return 0, "", f"Created service account [{a[3]}]."
        if a[:3] == ["iam", "service-accounts", "add-iam-policy-binding"]:
            self.bindings.append(("service-account", a[3], _flag(a, "member") or "", _flag(a, "role") or ""))
            return 0, "", ""
        if a[:3] == ["iam", "workload-identity-pools", "describe"]:
            if (project, a[3]) not in self.pools:
                return NOT_FOUND[0], "", NOT_FOUND[1]
            return 0, f"projects/{project}/locations/global/workloadIdentityPools/{a[3]}\n", ""
        if a[:3] == ["iam", "workload-identity-pools", "create"]:
            key = (project or "", a[3])
            if key in self.pools:
                return ALREADY_EXISTS[0], "", ALREADY_EXISTS[1]
            self.pools.add(key)
            return 0, "", ""
        if a[:4] == ["iam", "workload-identity-pools", "providers", "describe"]:
            key = (project or "", _flag(a, "workload-identity-pool") or "", a[4])
            if key not in self.providers:
                return NOT_FOUND[0], "", NOT_FOUND[1]
            return 0, f"{key}\n", ""
        if a[:4] == ["iam", "workload-identity-pools", "providers", "create-oidc"]:
            key = (project or "", _flag(a, "workload-identity-pool") or "", a[4])
            if key in self.providers:
                return ALREADY_EXISTS[0], "", ALREADY_EXISTS[1]
            self.providers[key] = list(a)
            return 0, "", ""
        if a[:3] == ["storage", "buckets", "describe"]:
            name = a[3][len("gs://"):]
            if name not in self.buckets:
                return NOT_FOUND[0], "", "ERROR: (gcloud.storage.buckets.describe) gs://%s not found: 404." % name
            return 0, name + "\n", ""
        if a[:3] == ["storage", "buckets", "create"]:
            name = a[3][len("gs://"):]
            if name in self.buckets:
                return 1, "", "HTTPError 409: Your previous request to create the named bucket succeeded and you already own it."
            self.buckets[name] = _flag(a, "location") or ""
            return 0, "", f"Creating gs://{name}/..."
        return 2, "", f"fake gcloud: unsupported command {a}"

    def _gh(self, a: List[str], stdin: Optional[str]) -> Tuple[int, str, str]:
        if a[:3] == ["api", "--method", "PUT"]:
            repo, env = a[3][len("repos/"):].split("/environments/")
            self.gh_environments.add((repo, env))
            return 0, "{}", ""
        if a[0] == "api":
            repo, env = a[1][len("repos/"):].split("/environments/")
            if (repo, env) not in self.gh_environments:
                return 1, "", "gh: Not Found (HTTP 404)"
            return 0, "{}", ""
        if a[:2] == ["secret", "set"]:
            self.gh_secrets[(_opt(a, "repo") or "", _opt(a, "env"), a[2])] = stdin or ""
            return 0, "", ""
        if a[:2] == ["variable", "set"]:
            self.gh_variables[(_opt(a, "repo") or "", _opt(a, "env"), a[2])] = _opt(a, "body") or ""
            return 0, "", ""
        return 2, "", f"fake gh: unsupported command {a}"


@pytest.fixture
def fake_cloud(monkeypatch: pytest.MonkeyPatch) -> FakeCloud:
    fake = FakeCloud()
    monkeypatch.setattr(subprocess, "run", fake.run)
    return fake


@pytest.fixture
def foundation_env() -> Dict[str, str]:
    return {
        "GCP_TOOLS_PROJECT_NAME": "my-app",
        "GCP_TOOLS_ORG_ID": "123",
        "GCP_TOOLS_BILLING_ACCOUNT": "XXX-XXX-XXX",
        "GCP_TOOLS_REGIONS": "us-central1",
        "GCP_TOOLS_GITHUB_IDENTITY_SPECIFIER": "my-org",
        "GCP_TOOLS_DEVELOPER_IDENTITY_SPECIFIER": "dev@co.com",
        "GCP_TOOLS_OWNER_EMAILS": "a@co.com",
    }
