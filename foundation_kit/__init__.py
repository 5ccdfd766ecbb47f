"""
foundation_kit
--------------

GCP foundation 프로젝트 프로비저닝 CLI / MCP 서버 패키지.
프로젝트 생성, 빌링 연결, API 활성화, 서비스 계정/IAM, Workload Identity
Federation, Terraform state 버킷까지 gcloud CLI 로 멱등하게 구성하고,
그 결과를 GitHub secrets 로 넘겨주는 것을 목표로 한다.
"""

__all__ = [
    "config",
    "orchestrator",
]
