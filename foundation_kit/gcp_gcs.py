"""
gcp_gcs
-------

Terraform state 용 GCS 버킷을 담당하는 모듈.
"""

from __future__ import annotations

from typing import Optional

from . import gcp_probes
from .gcp_probes import ProbeState
from .logging_utils import get_logger
from .subprocess_utils import execute_create


logger = get_logger(__name__)


def state_bucket_name(project_id: str) -> str:
    return f"{project_id}-terraform-state"


def ensure_state_bucket(
    project_id: str,
    region: str,
    *,
    timeout: Optional[float] = None,
) -> tuple[str, bool]:
    """
    버킷이 존재하는지 확인하고, 없으면 주어진 리전(요청의 첫 번째 리전)에 생성한다.
    """
    bucket_name = state_bucket_name(project_id)
    logger.info("GCS 버킷 확인: %s", bucket_name)

    state = gcp_probes.bucket_exists(bucket_name, timeout=timeout)
    if state is ProbeState.PRESENT:
        logger.info("기존 GCS 버킷을 사용합니다: %s", bucket_name)
        return bucket_name, False

    created = execute_create(
        [
            "gcloud",
            "storage",
            "buckets",
            "create",
            f"gs://{bucket_name}",
            f"--project={project_id}",
            f"--location={region}",
        ],
        "Create GCS Bucket",
        tolerate_existing=state is ProbeState.UNKNOWN,
        timeout=timeout,
    )
    if created:
        logger.info("GCS 버킷을 생성했습니다: %s (location=%s)", bucket_name, region)
    return bucket_name, created
