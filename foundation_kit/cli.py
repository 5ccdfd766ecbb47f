import json
import sys
from typing import Optional, Tuple

import click

from . import github_secrets
from .config import ConfigValidationError, FoundationRequest, command_timeout_from_env, load_env_files
from .logging_utils import setup_logging, get_logger
from .orchestrator import (
    FoundationResult,
    check_foundation_project,
    format_summary,
    plan_foundation_project,
    setup_foundation_project,
)
from .subprocess_utils import StepExecutionFailure


logger = get_logger(__name__)


@click.group()
@click.option(
    "-C",
    "--chdir",
    "chdir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=".",
    help="작업 디렉토리 (.env 파일 위치, 기본: 현재 디렉토리)",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="로그 레벨을 DEBUG로 올립니다.",
)
@click.pass_context
def main(ctx: click.Context, chdir: str, verbose: int) -> None:
    """GCP foundation 프로젝트 / GitHub Workload Identity 구성용 CLI"""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["chdir"] = chdir
    ctx.obj["verbose"] = verbose


def _load_request(ctx: click.Context, args: Tuple[str, ...]) -> FoundationRequest:
    base_dir: str = ctx.obj["chdir"]
    load_env_files(base_dir)
    try:
        req = FoundationRequest.from_env(args)
    except ConfigValidationError as e:
        click.echo(f"[ERROR] 입력값 오류: {e}", err=True)
        sys.exit(1)
    logger.debug("Request loaded: %s", req)
    return req


def _timeout_or_exit() -> Optional[float]:
    try:
        return command_timeout_from_env()
    except ConfigValidationError as e:
        click.echo(f"[ERROR] 입력값 오류: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("args", nargs=-1)
@click.option("--summary", "show_summary", is_flag=True, help="JSON 대신 사람이 읽기 좋은 요약을 출력합니다.")
@click.pass_context
def setup(ctx: click.Context, args: Tuple[str, ...], show_summary: bool) -> None:
    """
    foundation 프로젝트를 생성/확인하고 결과 JSON 을 출력

    GCP_TOOLS_* 환경변수가 비어 있으면 같은 순서의 positional 인자를 사용한다:
    PROJECT_NAME ORG_ID BILLING_ACCOUNT REGIONS GITHUB_IDENTITY DEVELOPER_IDENTITY OWNER_EMAILS
    """
    req = _load_request(ctx, args)
    timeout = _timeout_or_exit()

    try:
        result = setup_foundation_project(req, timeout=timeout)
    except StepExecutionFailure as e:
        logger.error("프로비저닝 중단: %s", e.label, exc_info=e)
        click.echo(f"[ERROR] {e}", err=True)
        sys.exit(1)
    except Exception as e:  # noqa: BLE001
        logger.exception("예상하지 못한 오류")
        click.echo(f"[ERROR] 예상하지 못한 오류: {e}", err=True)
        sys.exit(1)

    if show_summary:
        click.echo(format_summary(result))
    else:
        click.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))


@main.command()
@click.argument("args", nargs=-1)
@click.option(
    "-a",
    "--all",
    "show_all",
    is_flag=True,
    help="모든 리소스 상태를 출력합니다. (기본은 이슈만 요약)",
)
@click.pass_context
def check(ctx: click.Context, args: Tuple[str, ...], show_all: bool) -> None:
    """
    리소스 생성 없이 foundation 리소스 상태를 점검한다.
    (없거나 확인 불가 항목이 있으면 exit 1)
    """
    req = _load_request(ctx, args)

    try:
        report, has_issues = check_foundation_project(req, show_all=show_all)
    except Exception as e:  # noqa: BLE001
        logger.exception("사전 체크 중 오류 발생")
        click.echo(f"[ERROR] 체크 실패: {e}", err=True)
        sys.exit(1)

    click.echo(report)

    if has_issues:
        sys.exit(1)


@main.command()
@click.argument("args", nargs=-1)
@click.pass_context
def plan(ctx: click.Context, args: Tuple[str, ...]) -> None:
    """만들어질 리소스 이름과 역할 목록을 출력 (GCP 호출 없음)"""
    req = _load_request(ctx, args)
    click.echo(plan_foundation_project(req))


@main.command()
@click.option(
    "--result",
    "result_path",
    type=click.Path(dir_okay=False, exists=True, allow_dash=True),
    required=True,
    help="`setup` 이 출력한 결과 JSON 파일 ('-' 이면 stdin)",
)
@click.option("--repository", default=None, help="owner/repo (GitHub identity 가 owner 단위일 때 필수)")
def secrets(result_path: str, repository: Optional[str]) -> None:
    """setup 결과를 GitHub environments / secrets / variables 로 설정"""
    try:
        with click.open_file(result_path, "r", encoding="utf-8") as f:
            result = FoundationResult.from_dict(json.load(f))
    except (ValueError, KeyError) as e:
        click.echo(f"[ERROR] 결과 파일을 읽을 수 없습니다: {e}", err=True)
        sys.exit(1)

    try:
        report = github_secrets.setup_github_secrets(result, repository)
    except ConfigValidationError as e:
        click.echo(f"[ERROR] 입력값 오류: {e}", err=True)
        sys.exit(1)
    except StepExecutionFailure as e:
        logger.error("GitHub secrets 설정 중단: %s", e.label, exc_info=e)
        click.echo(f"[ERROR] {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(report, indent=2, ensure_ascii=False))


@main.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """MCP (JSON-RPC over stdio) 서버로 실행"""
    from .mcp_server import build_server

    load_env_files(ctx.obj["chdir"])
    build_server().serve()


if __name__ == "__main__":
    main()
