"""
mcp_server
----------

대화형 에이전트가 foundation 작업을 호출할 수 있도록 MCP (JSON-RPC 2.0, stdio) 서버를 제공한다.

메시지는 한 줄에 JSON 하나씩 주고받는다. stdout 은 프로토콜 전용이므로 로그는 stderr 로만 나간다.
"""

from __future__ import annotations

import json
import sys
from typing import Any, Callable, Dict, Optional, TextIO

from .config import ConfigValidationError, FoundationRequest, command_timeout_from_env
from .logging_utils import get_logger
from .orchestrator import FoundationResult, check_foundation_project, setup_foundation_project
from . import github_secrets


logger = get_logger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "gcp-foundation"
SERVER_VERSION = "0.1.0"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


_REQUEST_PROPERTIES = {
    "projectName": {"type": "string", "description": "프로젝트 이름 prefix"},
    "orgId": {"type": "string"},
    "billingAccount": {"type": "string"},
    "regions": {"type": "string", "description": "쉼표로 구분된 리전 목록 (첫 번째가 기본 리전)"},
    "githubIdentity": {"type": "string", "description": "owner 또는 owner/repo"},
    "developerIdentity": {"type": "string", "description": "개발자 이메일 또는 도메인"},
    "ownerEmails": {"type": "string", "description": "쉼표로 구분된 owner 이메일 목록"},
}
_REQUEST_REQUIRED = list(_REQUEST_PROPERTIES)


class _MethodNotFound(Exception):
    pass


def _failed(message: str) -> Dict[str, Any]:
    return {"status": "failed", "message": message}


def handle_setup_foundation_project(args: Dict[str, Any]) -> Dict[str, Any]:
    req = FoundationRequest.from_mapping(args)
    result = setup_foundation_project(req, timeout=command_timeout_from_env())
    payload = result.to_dict()
    payload.update({"status": "success", "message": "Foundation project setup completed successfully"})
    return payload


def handle_check_foundation_project(args: Dict[str, Any]) -> Dict[str, Any]:
    req = FoundationRequest.from_mapping(args)
    summary, has_issues = check_foundation_project(req, show_all=True)
    return {"status": "success", "hasIssues": has_issues, "summary": summary}


def handle_setup_github_secrets(args: Dict[str, Any]) -> Dict[str, Any]:
    """
    `result` 에 setup 결과를 넘기면 그대로 사용하고,
    없으면 요청 필드로 setup 을 다시 실행해 (멱등) 결과를 얻는다.
    """
    raw_result = args.get("result")
    if isinstance(raw_result, dict):
        try:
            result = FoundationResult.from_dict(raw_result)
        except KeyError as e:
            raise ConfigValidationError([f"result.{e.args[0]}"]) from e
    else:
        req = FoundationRequest.from_mapping(args)
        result = setup_foundation_project(req, timeout=command_timeout_from_env())
    payload: Dict[str, Any] = dict(github_secrets.setup_github_secrets(result, args.get("repository")))
    payload.update({"status": "success", "message": "GitHub secrets and variables configured successfully"})
    return payload


class FoundationMCPServer:
    def __init__(self, name: str = SERVER_NAME, version: str = SERVER_VERSION) -> None:
        self.name = name
        self.version = version
        self._tools: Dict[str, dict] = {}
        self._initialized = False

    def register_tool(
        self,
        name: str,
        description: str,
        input_schema: dict,
        handler: Callable[[Dict[str, Any]], Dict[str, Any]],
    ) -> None:
        self._tools[name] = {
            "description": description,
            "input_schema": input_schema,
            "handler": handler,
        }
        logger.debug("Registered tool: %s", name)

    # ------------------------------------------------------------------
    # dispatch
    # ------------------------------------------------------------------

    def handle_message(self, msg: Any) -> Optional[dict]:
        """
        JSON-RPC 메시지 하나를 처리하고 응답 dict 를 돌려준다.
        notification (id 없음) 이면 None.
        """
        if not isinstance(msg, dict) or "method" not in msg:
            request_id = msg.get("id") if isinstance(msg, dict) else None
            return self._make_error(request_id, INVALID_REQUEST, "Missing 'method' field")

        method = msg["method"]
        params = msg.get("params") or {}
        request_id = msg.get("id")
        is_notification = "id" not in msg

        try:
            result = self._handle_method(method, params)
        except _MethodNotFound as e:
            if is_notification:
                return None
            return self._make_error(request_id, METHOD_NOT_FOUND, str(e))
        except Exception as e:  # noqa: BLE001
            logger.exception("요청 처리 실패: %s", method)
            if is_notification:
                return None
            return self._make_error(request_id, INTERNAL_ERROR, str(e))

        if is_notification:
            return None
        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    def _make_error(self, request_id: Any, code: int, message: str) -> dict:
        return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}

    def _handle_method(self, method: str, params: dict) -> Any:
        if method == "initialize":
            return {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {"listChanged": False}},
                "serverInfo": {"name": self.name, "version": self.version},
            }
        if method == "notifications/initialized":
            self._initialized = True
            return None
        if method == "ping":
            return {}
        if method == "tools/list":
            return {
                "tools": [
                    {"name": name, "description": info["description"], "inputSchema": info["input_schema"]}
                    for name, info in self._tools.items()
                ]
            }
        if method == "tools/call":
            return self._call_tool(params.get("name", ""), params.get("arguments") or {})
        raise _MethodNotFound(f"Unknown method: {method}")

    def _call_tool(self, name: str, arguments: Dict[str, Any]) -> dict:
        if name not in self._tools:
            raise _MethodNotFound(f"Unknown tool: {name}")

        handler = self._tools[name]["handler"]
        is_error = False
        try:
            payload = handler(arguments)
        except ConfigValidationError as e:
            logger.error("입력값 검증 실패 (%s): %s", name, e)
            payload, is_error = _failed(str(e)), True
        except Exception as e:  # noqa: BLE001
            # 원인은 운영자용 로그에 남기고, 클라이언트에는 메시지만 돌려준다.
            logger.exception("도구 실행 실패: %s", name)
            payload, is_error = _failed(f"{name} failed: {e}"), True

        return {
            "content": [{"type": "text", "text": json.dumps(payload, indent=2, ensure_ascii=False)}],
            "isError": is_error,
        }

    # ------------------------------------------------------------------
    # stdio loop
    # ------------------------------------------------------------------

    def serve(self, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None) -> None:
        src = stdin if stdin is not None else sys.stdin
        dst = stdout if stdout is not None else sys.stdout
        logger.info("MCP server '%s' v%s starting (protocol %s)", self.name, self.version, PROTOCOL_VERSION)

        for line in src:
            line = line.strip()
            if not line:
                continue
            try:
                msg = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning("잘못된 JSON 메시지: %s", line[:200])
                response: Optional[dict] = self._make_error(None, PARSE_ERROR, str(e))
            else:
                response = self.handle_message(msg)
            if response is not None:
                dst.write(json.dumps(response, ensure_ascii=False) + "\n")
                dst.flush()

        logger.info("EOF on stdin, shutting down.")


def build_server() -> FoundationMCPServer:
    server = FoundationMCPServer()
    server.register_tool(
        "setup_foundation_project",
        "GCP foundation 프로젝트(프로젝트, 빌링, API, 서비스 계정, IAM, Workload Identity, state 버킷)를 멱등하게 구성한다.",
        {"type": "object", "properties": dict(_REQUEST_PROPERTIES), "required": _REQUEST_REQUIRED},
        handle_setup_foundation_project,
    )
    server.register_tool(
        "check_foundation_project",
        "리소스를 만들지 않고 foundation 프로젝트 구성 상태만 점검한다.",
        {"type": "object", "properties": dict(_REQUEST_PROPERTIES), "required": _REQUEST_REQUIRED},
        handle_check_foundation_project,
    )
    secrets_props: Dict[str, Any] = dict(_REQUEST_PROPERTIES)
    secrets_props["repository"] = {"type": "string", "description": "owner/repo (githubIdentity 가 owner 단위이면 필수)"}
    secrets_props["result"] = {
        "type": "object",
        "description": (
            "setup_foundation_project 결과. 생략하면 요청 필드로 setup_foundation_project 를 다시 실행하므로 "
            "GCP 리소스가 생성되거나 IAM 바인딩이 다시 적용될 수 있다."
        ),
    }
    server.register_tool(
        "setup_github_secrets",
        "foundation 결과를 GitHub environment/repository secrets 와 variables 로 설정한다. "
        "`result` 가 없으면 먼저 setup_foundation_project 를 실행한다 (GCP 변경 발생 가능).",
        {"type": "object", "properties": secrets_props},
        handle_setup_github_secrets,
    )
    return server
