"""HTTP routes for indexing, status polling and chat queries.

Endpoints:
    POST /repositories/index                      - start indexing in the background
    GET  /repositories/{repository_id}/status     - public status poll, never 404
    POST /internal/repository/index               - trusted inline indexing
    GET  /internal/repository/status/{repository_id} - internal record read, may 404
    POST /chat/query                              - gated question answering
    GET  /health                                  - metadata store reachability
"""

import logging
import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from repo_chat.api.schemas import ChatQueryBody, StartIndexBody, TrustedIndexBody
from repo_chat.api.services import Services
from repo_chat.core.errors import LockBusyError, ValidationError
from repo_chat.core.types import IndexStatus
from repo_chat.repositories.models import IndexRequest

logger = logging.getLogger(__name__)

router = APIRouter()


def get_services(request: Request) -> Services:
    return request.app.state.services


def verify_internal_signature(
    request: Request,
    x_internal_signature: str | None = Header(None),
) -> None:
    """Internal routes require the shared signature once one is configured."""
    expected = request.app.state.settings.internal_signature
    if not expected:
        return
    if not x_internal_signature or not secrets.compare_digest(x_internal_signature, expected):
        logger.warning(f"Rejected internal call to {request.url.path}: bad signature")
        raise HTTPException(status_code=401, detail="Invalid internal signature")


@router.post("/repositories/index", tags=["indexing"])
async def start_index(body: StartIndexBody, services: Services = Depends(get_services)):
    repository_id = body.to_repository_id()
    request = IndexRequest(
        repository_id=repository_id,
        requester_id=body.requester_id,
        branch=body.branch,
        credential=body.credential,
        force=body.force,
    )
    logger.info(f"Index request received: {request!r}")
    response = await services.orchestrator.request_index(request)
    return response.to_dict()


@router.get("/repositories/{repository_id}/status", tags=["indexing"])
async def poll_status(repository_id: str, services: Services = Depends(get_services)):
    return await services.orchestrator.poll_status(repository_id)


@router.post(
    "/internal/repository/index",
    tags=["internal"],
    dependencies=[Depends(verify_internal_signature)],
)
async def trusted_index(body: TrustedIndexBody, services: Services = Depends(get_services)):
    repository_id = body.to_repository_id()
    request = IndexRequest(
        repository_id=repository_id,
        requester_id=body.requester_id,
        branch=body.branch,
        credential=body.credential,
        force=True,
    )
    logger.info(f"Trusted index request received: {request!r}")

    try:
        response = await services.orchestrator.index_now(request)
    except (ValidationError, LockBusyError):
        raise
    except Exception as e:
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Repository indexing failed",
                "message": str(e),
                "repositoryId": str(repository_id),
            },
        )

    return {"success": True, **response.to_dict()}


@router.get(
    "/internal/repository/status/{repository_id}",
    tags=["internal"],
    dependencies=[Depends(verify_internal_signature)],
)
async def get_index_record(repository_id: str, services: Services = Depends(get_services)):
    record = await services.orchestrator.get_index_record(repository_id)
    if record is None:
        return JSONResponse(
            status_code=404,
            content={"error": "Repository not found", "repositoryId": repository_id},
        )

    data = record.to_dict()
    if record.status != IndexStatus.ERROR:
        data.pop("error")
    return data


@router.post("/chat/query", tags=["chat"])
async def chat_query(body: ChatQueryBody, services: Services = Depends(get_services)):
    return await services.gateway.handle(
        body.repository_id, body.question, body.conversation_id
    )


@router.get("/health", tags=["health"])
async def health(services: Services = Depends(get_services)):
    healthy = await services.graph.health_check() if services.graph is not None else True
    content = {
        "status": "ok" if healthy else "degraded",
        "metadataStore": healthy,
        "backgroundTasks": services.runner.pending,
    }
    return JSONResponse(status_code=200 if healthy else 503, content=content)
