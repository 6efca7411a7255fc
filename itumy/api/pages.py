"""Static HTML pages bundled with the package."""

from __future__ import annotations

from pathlib import Path

from fastapi.responses import FileResponse

STATIC_DIR = Path(__file__).resolve().parent.parent / "static"


def page_response(name: str) -> FileResponse:
    return FileResponse(STATIC_DIR / name, media_type="text/html")
