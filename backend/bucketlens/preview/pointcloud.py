"""Self-contained point-cloud viewer documents.

The viewer is a third-party, versioned bundle (``index.html``, ``index.css``,
``index.js``). It is fetched once per builder and rewritten around a specific
object URL so the result can be rendered in a sandboxed frame without any
further requests to the bundle host.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from bucketlens.preview.errors import ViewerBundleError

logger = logging.getLogger(__name__)

STYLESHEET_TAG = '<link rel="stylesheet" href="./index.css">'
CONFIG_SCRIPT_OPEN = '<script type="module">'
SCRIPT_CLOSE = "</script>"
MODULE_IMPORT = "import { main } from './index.js';"

DEFAULT_VIEWER_SETTINGS: dict[str, Any] = {
    "version": 2,
    "tonemapping": "none",
    "highPrecisionRendering": False,
    "background": {"color": [0, 0, 0]},
    "postEffectSettings": {
        "sharpness": {"enabled": False, "amount": 0},
        "bloom": {"enabled": False, "intensity": 1, "blurLevel": 2},
        "grading": {"enabled": False, "brightness": 0, "contrast": 1, "saturation": 1, "tint": [1, 1, 1]},
        "vignette": {"enabled": False, "intensity": 0.5, "inner": 0.3, "outer": 0.75, "curvature": 1},
        "fringing": {"enabled": False, "intensity": 0.5},
    },
    "animTracks": [],
    "cameras": [{"initial": {"position": [0, 0, 5], "target": [0, 0, 0], "fov": 75}}],
    "annotations": [],
    "startMode": "default",
    "hasStartPose": False,
}


@dataclass(frozen=True)
class ViewerBundle:
    html: str
    css: str
    js: str


def _js_literal(value: Any) -> str:
    # Keep "</script>" sequences from closing the inline block early.
    return json.dumps(value).replace("</", "<\\/")


def _config_script(content_url: str) -> str:
    url = _js_literal(content_url)
    return (
        f"{CONFIG_SCRIPT_OPEN}\n"
        "      window.sse = {\n"
        "        config: {\n"
        f"          contentUrl: {url},\n"
        f"          contents: fetch({url}),\n"
        "          noui: true\n"
        "        },\n"
        f"        settings: Promise.resolve({_js_literal(DEFAULT_VIEWER_SETTINGS)})\n"
        "      };\n"
        f"    {SCRIPT_CLOSE}"
    )


def assemble_viewer_document(bundle: ViewerBundle, content_url: str) -> str:
    """Inline the bundle's stylesheet and script and inject ``content_url``."""
    page = bundle.html

    if STYLESHEET_TAG not in page:
        raise ViewerBundleError("Viewer bundle has no stylesheet reference to inline")
    page = page.replace(STYLESHEET_TAG, f"<style>{bundle.css}</style>", 1)

    # The first module script in <head> reads its config from URL params; swap it out.
    config_start = page.find(CONFIG_SCRIPT_OPEN)
    head_end = page.find("</head>")
    if config_start == -1 or (head_end != -1 and config_start > head_end):
        raise ViewerBundleError("Viewer bundle has no head configuration script")
    config_end = page.find(SCRIPT_CLOSE, config_start)
    if config_end == -1:
        raise ViewerBundleError("Viewer bundle configuration script is not closed")
    config_end += len(SCRIPT_CLOSE)
    page = page[:config_start] + _config_script(content_url) + page[config_end:]

    # The bundle ends with `export { main };`, harmless inside an inline module.
    if MODULE_IMPORT not in page:
        raise ViewerBundleError("Viewer bundle has no module import to inline")
    page = page.replace(MODULE_IMPORT, bundle.js, 1)

    return page


class PointCloudViewerBuilder:
    def __init__(
        self,
        base_url: str,
        *,
        timeout_sec: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self._transport = transport
        self._bundle: ViewerBundle | None = None

    async def fetch_bundle(self) -> ViewerBundle:
        if self._bundle is not None:
            return self._bundle

        started = time.perf_counter()
        try:
            timeout = httpx.Timeout(float(self.timeout_sec or 0.0) or 15.0)
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                parts: list[str] = []
                for name in ("index.html", "index.css", "index.js"):
                    resp = await client.get(f"{self.base_url}/{name}")
                    resp.raise_for_status()
                    parts.append(resp.text)
        except httpx.HTTPError as exc:
            logger.warning(
                "viewer_bundle_fetch_failed base_url=%s elapsed_ms=%d error=%s",
                self.base_url,
                int((time.perf_counter() - started) * 1000),
                exc,
            )
            raise ViewerBundleError(f"Failed to fetch viewer bundle: {exc}") from exc

        self._bundle = ViewerBundle(html=parts[0], css=parts[1], js=parts[2])
        logger.info("viewer bundle fetched", extra={"base_url": self.base_url})
        return self._bundle

    async def build(self, content_url: str) -> str:
        bundle = await self.fetch_bundle()
        return assemble_viewer_document(bundle, content_url)
