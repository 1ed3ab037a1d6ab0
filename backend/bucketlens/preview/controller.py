"""Preview state machine.

One controller drives the preview of whatever object is currently selected:

    idle -> loading -> ready | blocked | error

Every asynchronous step belongs to a request stamped with the generation that
was current when it started. Selecting another object, loading on demand or
retrying bumps the generation and cancels the previous request's token, and a
result is committed only if its request is still the current one. Late results
from a superseded selection are therefore dropped no matter when they arrive.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Coroutine

from bucketlens.common.storage import StorageAdapter
from bucketlens.preview.builders import build_buffered_content
from bucketlens.preview.cache import PreviewCache
from bucketlens.preview.cancellation import CancellationToken
from bucketlens.preview.errors import FetchCancelledError, FetchFailedError, PreviewActionError
from bucketlens.preview.media import build_media_preview, build_point_cloud_preview
from bucketlens.preview.policy import DEFAULT_LIMITS, PreviewLimits, blocked_message, decide, fetch_budget
from bucketlens.preview.registry import is_url_handler, resolve_handler
from bucketlens.preview.types import (
    BlockedReason,
    CacheEntry,
    CacheKey,
    HandlerId,
    LoadMode,
    ObjectSelection,
    PreviewActions,
    PreviewContent,
    PreviewState,
)

logger = logging.getLogger(__name__)

FETCH_FAILED_MESSAGE = "Preview could not be loaded."


@dataclass(frozen=True)
class PreviewRequest:
    generation: int
    selection: ObjectSelection
    handler_id: HandlerId
    token: CancellationToken


class PreviewController:
    def __init__(
        self,
        storage: StorageAdapter,
        cache: PreviewCache,
        *,
        limits: PreviewLimits = DEFAULT_LIMITS,
    ) -> None:
        self.storage = storage
        self.cache = cache
        self.limits = limits
        self._state = PreviewState()
        self._selection: ObjectSelection | None = None
        self._manual_consent = False
        self._generation = 0
        self._token: CancellationToken | None = None
        self._task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending_tasks(self) -> frozenset[asyncio.Task]:
        return frozenset(self._tasks)

    @property
    def selection(self) -> ObjectSelection | None:
        return self._selection

    def snapshot(self) -> PreviewState:
        return dataclasses.replace(self._state)

    def actions(self) -> PreviewActions:
        return PreviewActions(
            load_preview=self.load_preview if self._state.can_manual_load else None,
            retry=self.retry if self._state.status == "error" else None,
        )

    # -- events ---------------------------------------------------------

    def select(self, selection: ObjectSelection | None) -> asyncio.Task | None:
        """Switch the preview to ``selection`` (``None`` clears it).

        Returns the background task when a fetch was started. Must be called
        from the event loop whenever the selection may need a fetch.
        """
        self._supersede()
        self._manual_consent = False

        if selection is None or selection.is_folder:
            self._selection = None
            self._state = PreviewState()
            return None

        self._selection = selection
        handler_id = resolve_handler(selection.key)
        self._state = PreviewState(handler_id=handler_id, status="loading")
        logger.info(
            "preview_selected container=%s key=%s handler=%s size=%s",
            selection.container,
            selection.key,
            handler_id,
            selection.size,
        )
        return self._evaluate(selection)

    def load_preview(self) -> asyncio.Task | None:
        """Load a preview the size policy held back until the user asked for it."""
        if self._selection is None or not self._state.can_manual_load:
            raise PreviewActionError("Manual preview load is not available")
        self._supersede()
        self._manual_consent = True
        self._enter_loading()
        return self._evaluate(self._selection)

    def retry(self) -> asyncio.Task | None:
        if self._selection is None or self._state.status != "error":
            raise PreviewActionError("Retry is only available after a failed preview")
        self._supersede()
        self._enter_loading()
        return self._evaluate(self._selection)

    async def wait(self) -> PreviewState:
        """Wait for the in-flight request, if any, and return the resulting state."""
        task = self._task
        if task is not None:
            await task
        return self.snapshot()

    def cancel(self) -> None:
        """Abort the in-flight request; a preview still loading falls back to idle."""
        if self._state.status != "loading":
            return
        self._supersede()
        self._selection = None
        self._manual_consent = False
        self._state = PreviewState()

    def close(self) -> None:
        self.select(None)

    # -- decision -------------------------------------------------------

    def _supersede(self) -> None:
        self._generation += 1
        if self._token is not None:
            self._token.cancel()
        self._token = None
        self._task = None

    def _enter_loading(self) -> None:
        state = self._state
        state.status = "loading"
        state.content = None
        state.download_url = None
        state.message = None
        state.blocked_reason = None
        state.can_manual_load = False
        state.is_truncated = False
        state.error = None

    def _evaluate(self, selection: ObjectSelection) -> asyncio.Task | None:
        handler_id = self._state.handler_id

        policy = decide(handler_id, selection.size, self._manual_consent, self.limits)
        if policy.blocked_reason is not None:
            self._apply_blocked(policy.blocked_reason, policy.can_manual_load)
            return None

        request = self._new_request(selection, handler_id)
        if is_url_handler(handler_id):
            return self._spawn(self._load_url(request))

        load_mode: LoadMode = policy.load_mode or "auto"
        cache_key = CacheKey(
            container=selection.container,
            key=selection.key,
            handler_id=handler_id,
            load_mode=load_mode,
        )
        entry = self.cache.get(cache_key)
        if entry is not None:
            logger.debug("preview cache hit", extra={"container": selection.container, "object_key": selection.key})
            self._apply_ready(entry.content, is_truncated=entry.is_truncated, message=entry.message)
            return None

        return self._spawn(self._load_bytes(request, load_mode, cache_key))

    def _new_request(self, selection: ObjectSelection, handler_id: HandlerId) -> PreviewRequest:
        token = CancellationToken()
        self._token = token
        return PreviewRequest(
            generation=self._generation,
            selection=selection,
            handler_id=handler_id,
            token=token,
        )

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        # Superseded tasks stay referenced until they finish.
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._task = task
        return task

    def is_current(self, request: PreviewRequest) -> bool:
        return request.generation == self._generation and not request.token.cancelled

    # -- async steps ----------------------------------------------------

    async def _load_url(self, request: PreviewRequest) -> None:
        selection = request.selection
        try:
            url = await self.storage.get_retrieval_url(selection.container, selection.key, request.token)
        except FetchCancelledError:
            logger.debug("preview_url_cancelled container=%s key=%s", selection.container, selection.key)
            return
        except Exception as exc:
            self._fail(request, exc)
            return

        if not self.is_current(request):
            return

        if request.handler_id == "point-cloud":
            content: PreviewContent = build_point_cloud_preview(url)
        else:
            content = build_media_preview(request.handler_id, url)
        self._apply_ready(content, is_truncated=False, message=None, download_url=url)

    async def _load_bytes(self, request: PreviewRequest, load_mode: LoadMode, cache_key: CacheKey) -> None:
        selection = request.selection
        budget = fetch_budget(selection.size, load_mode, self.limits)
        try:
            data = await self.storage.get_byte_range(selection.container, selection.key, budget, request.token)
        except FetchCancelledError:
            logger.debug("preview_fetch_cancelled container=%s key=%s", selection.container, selection.key)
            return
        except Exception as exc:
            self._fail(request, exc)
            return

        if not self.is_current(request):
            logger.debug("preview_result_discarded container=%s key=%s", selection.container, selection.key)
            return

        try:
            result = build_buffered_content(
                request.handler_id,
                data,
                key=selection.key,
                byte_limit=budget,
                object_size=selection.size,
                limits=self.limits,
            )
        except Exception as exc:
            logger.exception("preview_build_failed container=%s key=%s", selection.container, selection.key)
            self._fail(request, exc)
            return

        entry = self.cache.put(
            cache_key,
            CacheEntry(content=result.content, is_truncated=result.is_truncated, message=result.message),
        )
        logger.info(
            "preview_ready container=%s key=%s handler=%s mode=%s bytes=%d truncated=%s",
            selection.container,
            selection.key,
            request.handler_id,
            load_mode,
            len(data),
            entry.is_truncated,
        )
        self._apply_ready(entry.content, is_truncated=entry.is_truncated, message=entry.message)

    # -- commits --------------------------------------------------------

    def _apply_blocked(self, reason: BlockedReason, can_manual_load: bool) -> None:
        state = self._state
        state.status = "blocked"
        state.content = None
        state.error = None
        state.blocked_reason = reason
        state.can_manual_load = can_manual_load
        state.is_truncated = False
        state.message = blocked_message(reason, self.limits)

    def _apply_ready(
        self,
        content: PreviewContent,
        *,
        is_truncated: bool,
        message: str | None,
        download_url: str | None = None,
    ) -> None:
        state = self._state
        state.status = "ready"
        state.content = content
        state.is_truncated = is_truncated
        state.message = message
        state.error = None
        state.blocked_reason = None
        state.can_manual_load = False
        if download_url is not None:
            state.download_url = download_url

    def _fail(self, request: PreviewRequest, exc: Exception) -> None:
        selection = request.selection
        if not self.is_current(request):
            logger.debug("preview_failure_discarded container=%s key=%s", selection.container, selection.key)
            return

        if isinstance(exc, FetchFailedError):
            detail = exc.detail
        else:
            detail = str(exc) or exc.__class__.__name__
        logger.warning(
            "preview_fetch_failed container=%s key=%s handler=%s error=%s",
            selection.container,
            selection.key,
            request.handler_id,
            detail,
        )
        state = self._state
        state.status = "error"
        state.content = None
        state.is_truncated = False
        state.message = FETCH_FAILED_MESSAGE
        state.error = detail
