"""HTTP endpoints for the workspace broker.

Endpoints:
- GET  /health          - Liveness check
- POST /mcp             - Tool invocation (JSON-RPC), bearer token required
- GET  /setup           - Lists accounts or starts OAuth for one account
- GET  /oauth2callback  - OAuth callback, stores the refresh token

The setup routes live on their own router and are only mounted when an
OAuth client is configured.
"""

import secrets
from html import escape
from typing import Any
from urllib.parse import urlencode

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from loguru import logger

from workspace_broker.authorization import AuthorizationFlow
from workspace_broker.broker import WorkspaceBroker
from workspace_broker.config import Settings
from workspace_broker.exceptions import (
    AccountNotAllowedError,
    AuthorizationSecretMismatchError,
    AuthorizationStateInvalidError,
    NoRefreshTokenIssuedError,
)
from workspace_broker.tools import TOOL_NAME, handle_tool_call, tool_definition

SERVER_NAME = "google-workspace-broker"
SERVER_VERSION = "1.0.0"
MCP_PROTOCOL_VERSION = "2025-03-26"

router = APIRouter()
setup_router = APIRouter(tags=["setup"])


# =============================================================================
# Dependencies
# =============================================================================


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_broker(request: Request) -> WorkspaceBroker:
    return request.app.state.broker


def get_authorization_flow(request: Request) -> AuthorizationFlow:
    return request.app.state.authorization_flow


def verify_bearer_token(expected: str, authorization: str | None) -> bool:
    """Check an ``Authorization: Bearer`` header against the configured token."""
    if not expected or not authorization:
        return False
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return False
    return secrets.compare_digest(token.strip().encode("utf-8"), expected.encode("utf-8"))


# =============================================================================
# Health
# =============================================================================


@router.get("/health")
async def health_check() -> dict:
    """Liveness check."""
    return {"status": "ok"}


# =============================================================================
# Tool endpoint
# =============================================================================


def _rpc_result(request_id: Any, result: dict[str, Any]) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _rpc_error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


@router.post("/mcp", response_model=None)
def mcp_endpoint(
    payload: dict[str, Any] = Body(...),
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
    broker: WorkspaceBroker = Depends(get_broker),
) -> dict[str, Any] | Response:
    """Minimal JSON-RPC endpoint exposing the google_workspace tool.

    Declared with ``def`` so the blocking Google client calls run in the
    thread pool.
    """
    if not verify_bearer_token(settings.mcp_auth_token, authorization):
        logger.warning("Rejected tool request", extra={"reason": "invalid_bearer_token"})
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    method = payload.get("method")
    request_id = payload.get("id")

    # Notifications carry no id and get no response body
    if request_id is None:
        return Response(status_code=202)

    if method == "initialize":
        return _rpc_result(
            request_id,
            {
                "protocolVersion": MCP_PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
            },
        )

    if method == "ping":
        return _rpc_result(request_id, {})

    if method == "tools/list":
        return _rpc_result(request_id, {"tools": [tool_definition()]})

    if method == "tools/call":
        params = payload.get("params") or {}
        if params.get("name") != TOOL_NAME:
            return _rpc_error(request_id, -32602, f"Unknown tool: {params.get('name')}")
        arguments = params.get("arguments") or {}
        text = handle_tool_call(broker, arguments)
        return _rpc_result(request_id, {"content": [{"type": "text", "text": text}]})

    return _rpc_error(request_id, -32601, f"Method not found: {method}")


# =============================================================================
# Account setup
# =============================================================================


def _page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        content=(
            "<!DOCTYPE html><html><head><title>"
            f"{escape(title)}</title></head>"
            '<body style="font-family: sans-serif; padding: 40px;">'
            f"<h1>{escape(title)}</h1>{body}</body></html>"
        ),
        status_code=status_code,
    )


def _account_list(accounts: list[str]) -> str:
    return "<ul>" + "".join(f"<li>{escape(a)}</li>" for a in accounts) + "</ul>"


def _setup_link(token: str, account: str | None = None) -> str:
    params = {"token": token}
    if account:
        params["account"] = account
    return f"/setup?{urlencode(params)}"


@setup_router.get("/setup", response_model=None)
def setup(
    token: str | None = None,
    account: str | None = None,
    broker: WorkspaceBroker = Depends(get_broker),
    flow: AuthorizationFlow = Depends(get_authorization_flow),
) -> HTMLResponse | RedirectResponse:
    """List configured accounts, or start the OAuth flow for one account."""
    try:
        flow.verify_setup_secret(token)
    except AuthorizationSecretMismatchError as e:
        logger.warning("Rejected setup request", extra={"reason": "setup_secret_mismatch"})
        raise HTTPException(status_code=403, detail=str(e)) from None

    if not account:
        links = "".join(
            f'<li><a href="{escape(_setup_link(token or "", a))}">{escape(a)}</a></li>'
            for a in broker.registry.oauth_accounts
        )
        body = (
            "<h2>Configured accounts:</h2>"
            f"{_account_list(broker.configured_accounts())}"
            "<h2>Authorize OAuth accounts:</h2>"
            f"<ul>{links}</ul>"
        )
        return _page("Google Workspace Broker: Account Setup", body)

    try:
        authorization_url = flow.start(token, account)
    except AccountNotAllowedError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None

    return RedirectResponse(url=authorization_url, status_code=302)


@setup_router.get("/oauth2callback", response_model=None)
def oauth2callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    broker: WorkspaceBroker = Depends(get_broker),
    flow: AuthorizationFlow = Depends(get_authorization_flow),
) -> HTMLResponse:
    """Handle Google's redirect after consent."""
    if error:
        logger.warning("Provider returned an authorization error", extra={"error": error})
        return _page("Authorization failed", f"<p>{escape(error)}</p>", status_code=400)

    if not code or not state:
        return _page("Missing code or state", "", status_code=400)

    try:
        account = flow.complete(code, state)
    except AuthorizationStateInvalidError:
        return _page("Invalid state", "", status_code=400)
    except AuthorizationSecretMismatchError:
        return _page("Invalid setup token", "", status_code=403)
    except NoRefreshTokenIssuedError:
        return _page(
            "No refresh token received",
            "<p>This usually means the app already has access. Revoke it at "
            '<a href="https://myaccount.google.com/permissions">Google Account Permissions</a>, '
            "then try again.</p>",
            status_code=400,
        )
    except AccountNotAllowedError as e:
        return _page("Account not allowed", f"<p>{escape(e.account)}</p>", status_code=403)
    except Exception as e:
        logger.exception("OAuth callback error")
        return _page("Token exchange failed", f"<p>{escape(str(e))}</p>", status_code=500)

    setup_secret = flow.setup_secret
    body = (
        f"<p>Token saved for: <strong>{escape(account)}</strong></p>"
        "<h2>All configured accounts:</h2>"
        f"{_account_list(broker.configured_accounts())}"
        f'<p><a href="{escape(_setup_link(setup_secret))}">Back to setup</a></p>'
    )
    return _page("Success!", body)