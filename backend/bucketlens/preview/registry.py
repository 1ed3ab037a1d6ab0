"""Object name -> preview handler resolution."""
from __future__ import annotations

from bucketlens.preview.types import HandlerId

# Extension families, in lookup order.
HANDLER_EXTENSIONS: list[tuple[HandlerId, tuple[str, ...]]] = [
    ("image", ("jpg", "jpeg", "png", "gif", "webp", "svg", "bmp", "avif")),
    ("video", ("mp4", "mov", "webm", "m4v", "ogv", "avi", "mkv")),
    ("point-cloud", ("ply", "splat")),
    ("table", ("csv", "tsv")),
    ("markup", ("html", "htm")),
    (
        "text",
        (
            "txt", "log", "md", "json", "yaml", "yml", "xml", "ini", "conf",
            "toml", "js", "jsx", "ts", "tsx", "css", "py", "sh",
        ),
    ),
]

HANDLER_BY_EXTENSION: dict[str, HandlerId] = {
    extension: handler_id
    for handler_id, extensions in HANDLER_EXTENSIONS
    for extension in extensions
}

# Syntax hints for the text renderer
LANGUAGE_BY_EXTENSION = {
    "txt": "plaintext",
    "log": "log",
    "md": "markdown",
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "xml": "xml",
    "ini": "ini",
    "conf": "ini",
    "toml": "toml",
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "css": "css",
    "html": "html",
    "htm": "html",
    "py": "python",
    "sh": "shell",
}

URL_HANDLERS: frozenset[HandlerId] = frozenset({"image", "video", "point-cloud"})


def get_object_extension(name: str) -> str:
    """Get lowercase extension (without dot) from an object key, ignoring any query string."""
    cleaned = name.split("?", 1)[0]
    if "." not in cleaned:
        return ""
    return cleaned.rsplit(".", 1)[1].lower()


def resolve_handler(name: str) -> HandlerId:
    return HANDLER_BY_EXTENSION.get(get_object_extension(name), "unsupported")


def get_language_hint(name: str) -> str | None:
    return LANGUAGE_BY_EXTENSION.get(get_object_extension(name))


def is_url_handler(handler_id: HandlerId) -> bool:
    """Image, video and point-cloud previews render from a retrieval URL."""
    return handler_id in URL_HANDLERS
