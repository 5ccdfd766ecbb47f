"""
constants
---------

프로비저닝 코어와 GitHub secrets 설정이 함께 쓰는 고정 테이블.
환경 목록이나 역할 목록을 여러 모듈에 중복으로 두지 않기 위해 한 곳에 모은다.
"""

from __future__ import annotations

from typing import List


# 순서가 의미를 가진다 (결과 dict / secrets 설정 순서).
ENVIRONMENTS: List[str] = ["dev", "test", "sbx", "prod"]

# 로컬 개발자 impersonation 용 provider 를 추가로 갖는 환경
DEVELOPER_ENVIRONMENT = "dev"

REQUIRED_APIS: List[str] = [
    "cloudresourcemanager.googleapis.com",
    "cloudbilling.googleapis.com",
    "iam.googleapis.com",
    "compute.googleapis.com",
    "sts.googleapis.com",
    "iamcredentials.googleapis.com",
]

PROJECT_ROLES: List[str] = [
    "roles/viewer",
    "roles/iam.serviceAccountAdmin",
]

ORG_ROLES: List[str] = [
    "roles/resourcemanager.projectCreator",
    "roles/resourcemanager.projectDeleter",
    "roles/iam.serviceAccountAdmin",
    "roles/serviceusage.serviceUsageAdmin",
    "roles/resourcemanager.projectIamAdmin",
    "roles/storage.admin",
    "roles/compute.admin",
    "roles/compute.networkAdmin",
    "roles/vpcaccess.admin",
    "roles/compute.xpnAdmin",
    "roles/secretmanager.admin",
    "roles/cloudsql.admin",
    "roles/pubsub.admin",
    "roles/run.admin",
    "roles/cloudfunctions.admin",
    "roles/apigateway.admin",
    "roles/spanner.admin",
    "roles/datastore.owner",
    "roles/artifactregistry.admin",
]

BILLING_ROLE = "roles/billing.user"
WORKLOAD_IDENTITY_USER_ROLE = "roles/iam.workloadIdentityUser"

WIF_LOCATION = "global"

GITHUB_PROVIDER_ID = "github-actions-provider"
GITHUB_ISSUER_URI = "https://token.actions.githubusercontent.com"
GITHUB_ATTRIBUTE_MAPPING = (
    "google.subject=assertion.sub,"
    "attribute.actor=assertion.actor,"
    "attribute.repository=assertion.repository,"
    "attribute.repository_owner=assertion.repository_owner"
)

DEVELOPER_PROVIDER_ID = "local-developer-provider"
DEVELOPER_ISSUER_URI = "https://accounts.google.com"
DEVELOPER_ATTRIBUTE_MAPPING = "google.subject=assertion.sub"
# dev 로그인 provider 는 조건 없이 신뢰한다.
DEVELOPER_ATTRIBUTE_CONDITION = "true"

# GitHub secrets / variables 이름
ENV_SECRET_WORKLOAD_IDENTITY_PROVIDER = "GCP_TOOLS_WORKLOAD_IDENTITY_PROVIDER"
ENV_VARIABLE_ENVIRONMENT = "GCP_TOOLS_ENVIRONMENT"

REPO_SECRET_SERVICE_ACCOUNT = "GCP_TOOLS_SERVICE_ACCOUNT"
REPO_SECRET_PROJECT_ID = "GCP_TOOLS_FOUNDATION_PROJECT_ID"
REPO_SECRET_PROJECT_NUMBER = "GCP_TOOLS_FOUNDATION_PROJECT_NUMBER"
REPO_SECRET_ORG_ID = "GCP_TOOLS_ORG_ID"
REPO_SECRET_BILLING_ACCOUNT = "GCP_TOOLS_BILLING_ACCOUNT"
REPO_SECRET_STATE_BUCKET = "GCP_TOOLS_TERRAFORM_STATE_BUCKET"

REPO_VARIABLE_REGIONS = "GCP_TOOLS_REGIONS"
REPO_VARIABLE_DEFAULT_REGION = "GCP_TOOLS_DEFAULT_REGION"
REPO_VARIABLE_OWNER_EMAILS = "GCP_TOOLS_OWNER_EMAILS"
