"""
FastAPI routes for the evidence tracker's third-party integrations.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Annotated, Any, Optional

import httpx
from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile
from fastapi.responses import JSONResponse, RedirectResponse

from app.core.errors import (
    InvalidStateError,
    NotConnectedError,
    OAuthTokenExchangeError,
)
from app.dependencies import (
    get_app_settings,
    get_drive_client,
    get_drive_upload_service,
    get_mycase_client,
    get_oauth_clients,
    get_oauth_state_encoder,
    get_session_context,
    get_token_store,
)
from app.models.oauth import OFFICE_SUBJECT, Integration, TokenRecord
from app.schemas import (
    CaseSummaryList,
    ConnectionStatus,
    DriveFolderListing,
    DriveUploadResult,
    OAuthCallbackPayload,
    SessionContext,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def _subject_for(integration: Integration, session: SessionContext) -> str:
    """MyCase is one shared office account; Drive is connected per staff user."""
    if integration is Integration.MYCASE:
        return OFFICE_SUBJECT
    return session.user_id


def _wants_redirect(request: Request, redirect: bool) -> bool:
    accept_header = request.headers.get("accept", "")
    return redirect or "text/html" in accept_header.lower()


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/{integration}/authorize", status_code=HTTPStatus.OK)
async def start_oauth_flow(
    request: Request,
    integration: Integration,
    session: Annotated[SessionContext, Depends(get_session_context)],
    oauth_clients: Annotated[Any, Depends(get_oauth_clients)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    redirect_to: str | None = Query(
        default=None,
        description="Optional URL to return the browser to once the flow completes.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the consent screen.",
    ),
) -> Any:
    """
    Kick off the OAuth flow by generating a signed state and authorization URL.
    """
    state_payload = {
        "integration": integration.value,
        "subject": _subject_for(integration, session),
        "nonce": uuid.uuid4().hex,
        "redirect_to": redirect_to,
        "issued_at": datetime.now(timezone.utc).isoformat(),
    }
    state = state_encoder.encode(state_payload)
    authorization_url = oauth_clients[integration].build_authorization_url(state=state)

    if _wants_redirect(request, redirect):
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return {"authorization_url": authorization_url, "state": state}


def _read_state(
    state_encoder: Any,
    state: Optional[str],
    *,
    integration: Integration,
    ttl_seconds: int,
) -> dict:
    """Decode and validate callback state; fail closed on anything unexpected."""
    state_data = state_encoder.decode(state)

    if state_data.get("integration") != integration.value:
        raise InvalidStateError(
            "OAuth state was issued for a different integration.",
            integration=integration.value,
        )

    issued_at_raw = state_data.get("issued_at")
    try:
        issued_at = datetime.fromisoformat(issued_at_raw)
    except (TypeError, ValueError) as exc:
        raise InvalidStateError(
            "Invalid issued_at in OAuth state.", integration=integration.value
        ) from exc
    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)
    if datetime.now(timezone.utc) - issued_at > timedelta(seconds=ttl_seconds):
        raise InvalidStateError("OAuth state has expired.", integration=integration.value)

    subject = state_data.get("subject")
    if not subject or not isinstance(subject, str):
        raise InvalidStateError(
            "Missing subject in OAuth state.", integration=integration.value
        )
    return state_data


async def _complete_oauth_flow(
    *,
    integration: Integration,
    payload: OAuthCallbackPayload,
    oauth_client: Any,
    state_encoder: Any,
    token_store: Any,
    settings: Any,
) -> dict:
    """Run the callback state machine; only a successful exchange touches the store."""
    if payload.error:
        logger.warning("%s authorization denied: %s", integration.value, payload.error)
        redirect_to = None
        if payload.state:
            try:
                redirect_to = state_encoder.decode(payload.state).get("redirect_to")
            except InvalidStateError:
                redirect_to = None
        return {"status": "error", "error": payload.error, "redirect_to": redirect_to}

    state_data = _read_state(
        state_encoder,
        payload.state,
        integration=integration,
        ttl_seconds=settings.oauth.state_ttl_seconds,
    )
    subject = state_data["subject"]
    redirect_to = state_data.get("redirect_to")

    if not payload.code:
        return {"status": "error", "error": "no_code", "redirect_to": redirect_to}

    issued_at = datetime.now(timezone.utc)
    try:
        grant = await oauth_client.exchange_authorization_code(payload.code)
    except OAuthTokenExchangeError:
        logger.warning("%s authorization code exchange failed", integration.value)
        return {"status": "error", "error": "exchange_failed", "redirect_to": redirect_to}

    record = TokenRecord.from_grant(
        grant, integration=integration, subject=subject, issued_at=issued_at
    )
    await token_store.upsert(integration, subject, record)
    logger.info("Connected %s for %s", integration.value, subject)

    return {"status": "connected", "integration": integration.value, "redirect_to": redirect_to}


def _callback_response(
    request: Request,
    integration: Integration,
    result: dict,
    settings: Any,
    redirect: bool,
) -> Response:
    redirect_target = result.get("redirect_to") or settings.frontend_base_url
    if redirect_target and _wants_redirect(request, redirect):
        if result["status"] == "connected":
            params = {f"{integration.value}_connected": "true"}
        else:
            params = {f"{integration.value}_error": result["error"]}
        url = httpx.URL(str(redirect_target)).copy_merge_params(params)
        return RedirectResponse(url=str(url), status_code=HTTPStatus.TEMPORARY_REDIRECT)

    status_code = HTTPStatus.OK if result["status"] == "connected" else HTTPStatus.BAD_REQUEST
    return JSONResponse(status_code=status_code, content=result)


@router.get("/auth/{integration}/callback")
async def handle_oauth_callback(
    request: Request,
    integration: Integration,
    oauth_clients: Annotated[Any, Depends(get_oauth_clients)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    token_store: Annotated[Any, Depends(get_token_store)],
    settings: Annotated[Any, Depends(get_app_settings)],
    state: str | None = Query(default=None, description="OAuth state token."),
    code: str | None = Query(default=None, description="Authorization code."),
    error: str | None = Query(default=None, description="Error from the authority."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    """Browser landing point after the authority's consent screen."""
    payload = OAuthCallbackPayload(state=state, code=code, error=error)
    result = await _complete_oauth_flow(
        integration=integration,
        payload=payload,
        oauth_client=oauth_clients[integration],
        state_encoder=state_encoder,
        token_store=token_store,
        settings=settings,
    )
    return _callback_response(request, integration, result, settings, redirect)


@router.post("/auth/{integration}/callback")
async def handle_oauth_callback_post(
    integration: Integration,
    payload: OAuthCallbackPayload,
    oauth_clients: Annotated[Any, Depends(get_oauth_clients)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    token_store: Annotated[Any, Depends(get_token_store)],
    settings: Annotated[Any, Depends(get_app_settings)],
) -> Response:
    """Complete the exchange for front ends that relay the callback parameters."""
    result = await _complete_oauth_flow(
        integration=integration,
        payload=payload,
        oauth_client=oauth_clients[integration],
        state_encoder=state_encoder,
        token_store=token_store,
        settings=settings,
    )
    status_code = HTTPStatus.OK if result["status"] == "connected" else HTTPStatus.BAD_REQUEST
    return JSONResponse(status_code=status_code, content=result)


@router.get("/integrations/{integration}/status", response_model=ConnectionStatus)
async def integration_status(
    integration: Integration,
    session: Annotated[SessionContext, Depends(get_session_context)],
    token_store: Annotated[Any, Depends(get_token_store)],
) -> ConnectionStatus:
    """Whether the caller's credential for ``integration`` exists."""
    subject = _subject_for(integration, session)
    try:
        record = await token_store.get(integration, subject)
    except NotConnectedError:
        return ConnectionStatus(
            integration=integration.value, subject=subject, connected=False
        )
    return ConnectionStatus(
        integration=integration.value,
        subject=subject,
        connected=True,
        expires_at=record.expires_at,
        scope=record.scope,
    )


@router.get("/mycase/clients", response_model=CaseSummaryList)
async def list_mycase_clients(
    session: Annotated[SessionContext, Depends(get_session_context)],
    mycase: Annotated[Any, Depends(get_mycase_client)],
) -> CaseSummaryList:
    """All MyCase cases labelled by client, most recently updated first."""
    return CaseSummaryList(clients=await mycase.list_clients())


@router.get("/mycase/search-clients", response_model=CaseSummaryList)
async def search_mycase_clients(
    session: Annotated[SessionContext, Depends(get_session_context)],
    mycase: Annotated[Any, Depends(get_mycase_client)],
    query: str = Query(default="", description="Client first and/or last name."),
) -> CaseSummaryList:
    """Cases belonging to clients whose first or last name matches ``query``."""
    if not query.strip():
        return CaseSummaryList(clients=[])
    return CaseSummaryList(clients=await mycase.search_clients(query))


@router.get("/google/drive/folders", response_model=DriveFolderListing)
async def list_drive_folders(
    session: Annotated[SessionContext, Depends(get_session_context)],
    drive: Annotated[Any, Depends(get_drive_client)],
    parent: str = Query(default="root", description="Parent folder identifier."),
) -> DriveFolderListing:
    folders = await drive.list_folders(user_id=session.user_id, parent_id=parent)
    return DriveFolderListing(folders=folders, parent_id=parent)


@router.post(
    "/google/drive/upload",
    response_model=DriveUploadResult,
    status_code=HTTPStatus.CREATED,
)
async def upload_to_drive(
    session: Annotated[SessionContext, Depends(get_session_context)],
    upload_service: Annotated[Any, Depends(get_drive_upload_service)],
    file: UploadFile = File(..., description="Evidence file contents."),
    folder_id: str | None = Form(
        default=None,
        alias="folderId",
        description="Target folder; defaults to the configured root folder.",
    ),
    file_name: str | None = Form(
        default=None,
        alias="fileName",
        description="Name to store the file under; defaults to the uploaded name.",
    ),
) -> DriveUploadResult:
    """Attach an evidence file to the caller's Google Drive."""
    return await upload_service.upload(
        user_id=session.user_id,
        upload=file,
        file_name=file_name,
        folder_id=folder_id,
    )
