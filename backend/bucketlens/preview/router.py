from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse

from bucketlens.common.exceptions import ApiException
from bucketlens.common.responses import ApiResponse
from bucketlens.preview.context import PreviewContext, get_preview_context
from bucketlens.preview.controller import PreviewController
from bucketlens.preview.schemas import (
    PreviewSessionResponse,
    SelectionRequest,
    actions_to_schema,
    state_to_schema,
)
from bucketlens.preview.types import MarkupContent, ObjectSelection, PointCloudContent

router = APIRouter(prefix="/api/preview", tags=["preview"])

# Endpoints that drive a controller are async: controllers schedule their
# fetches on the running event loop.


def _get_controller(ctx: PreviewContext, session_id: str) -> PreviewController:
    controller = ctx.sessions.get(session_id)
    if controller is None:
        raise ApiException(status_code=404, code=40400, message=f"Preview session not found: {session_id}")
    return controller


def _session_response(session_id: str, controller: PreviewController) -> dict:
    return PreviewSessionResponse(
        session_id=session_id,
        state=state_to_schema(controller.snapshot()),
        actions=actions_to_schema(controller.actions()),
    ).to_wire()


def _sandbox_headers(*, allow_scripts: bool) -> dict[str, str]:
    return {
        "Content-Security-Policy": "sandbox allow-scripts" if allow_scripts else "sandbox",
        "X-Content-Type-Options": "nosniff",
        "Cache-Control": "no-store",
    }


@router.post("/sessions", response_model=ApiResponse)
async def create_session(ctx: PreviewContext = Depends(get_preview_context)) -> ApiResponse:
    controller = ctx.new_controller()
    session_id = ctx.sessions.add(controller)
    return ApiResponse.ok(_session_response(session_id, controller))


@router.get("/sessions/{session_id}", response_model=ApiResponse)
async def get_session(session_id: str, ctx: PreviewContext = Depends(get_preview_context)) -> ApiResponse:
    controller = _get_controller(ctx, session_id)
    return ApiResponse.ok(_session_response(session_id, controller))


@router.delete("/sessions/{session_id}", response_model=ApiResponse)
async def delete_session(session_id: str, ctx: PreviewContext = Depends(get_preview_context)) -> ApiResponse:
    if not ctx.sessions.remove(session_id):
        raise ApiException(status_code=404, code=40400, message=f"Preview session not found: {session_id}")
    return ApiResponse.ok(None, "Preview session closed")


@router.put("/sessions/{session_id}/selection", response_model=ApiResponse)
async def select_object(
    session_id: str,
    body: SelectionRequest,
    wait: bool = False,
    ctx: PreviewContext = Depends(get_preview_context),
) -> ApiResponse:
    controller = _get_controller(ctx, session_id)
    container = (body.container or ctx.default_container).strip()
    if not container:
        raise ApiException(status_code=400, code=40001, message="Container is required")

    controller.select(
        ObjectSelection(container=container, key=body.key, size=body.size, is_folder=body.is_folder)
    )
    if wait:
        await controller.wait()
    return ApiResponse.ok(_session_response(session_id, controller))


@router.delete("/sessions/{session_id}/selection", response_model=ApiResponse)
async def clear_selection(session_id: str, ctx: PreviewContext = Depends(get_preview_context)) -> ApiResponse:
    controller = _get_controller(ctx, session_id)
    controller.select(None)
    return ApiResponse.ok(_session_response(session_id, controller))


@router.post("/sessions/{session_id}/load", response_model=ApiResponse)
async def load_preview(
    session_id: str,
    wait: bool = False,
    ctx: PreviewContext = Depends(get_preview_context),
) -> ApiResponse:
    """Manual load for objects over the automatic size cap."""
    controller = _get_controller(ctx, session_id)
    controller.load_preview()
    if wait:
        await controller.wait()
    return ApiResponse.ok(_session_response(session_id, controller))


@router.post("/sessions/{session_id}/retry", response_model=ApiResponse)
async def retry_preview(
    session_id: str,
    wait: bool = False,
    ctx: PreviewContext = Depends(get_preview_context),
) -> ApiResponse:
    controller = _get_controller(ctx, session_id)
    controller.retry()
    if wait:
        await controller.wait()
    return ApiResponse.ok(_session_response(session_id, controller))


@router.get("/sessions/{session_id}/markup")
async def get_markup_document(
    session_id: str,
    allow_scripts: bool = Query(default=False, alias="allowScripts"),
    ctx: PreviewContext = Depends(get_preview_context),
) -> HTMLResponse:
    """Serve the markup preview for a sandboxed frame; scripts stay off unless asked for."""
    controller = _get_controller(ctx, session_id)
    content = controller.snapshot().content
    if not isinstance(content, MarkupContent):
        raise ApiException(status_code=409, code=40901, message="No markup preview is ready")
    return HTMLResponse(content.html, headers=_sandbox_headers(allow_scripts=allow_scripts))


@router.get("/sessions/{session_id}/viewer")
async def get_point_cloud_viewer(
    session_id: str,
    ctx: PreviewContext = Depends(get_preview_context),
) -> HTMLResponse:
    controller = _get_controller(ctx, session_id)
    content = controller.snapshot().content
    if not isinstance(content, PointCloudContent):
        raise ApiException(status_code=409, code=40901, message="No point-cloud preview is ready")
    document = await ctx.viewer.build(content.url)
    return HTMLResponse(document, headers=_sandbox_headers(allow_scripts=True))
