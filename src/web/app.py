"""FastAPI web interface for the staticizer.

Access is controlled by a token in the URL path:
    http://host:8080/<STATICIZER_WEB_TOKEN>/api/analyze

Set the STATICIZER_WEB_TOKEN environment variable to the token string that
users must include in their URL.  If the variable is unset every request is
allowed (useful for local development) and the routes are also served without
the token prefix.

Routes:
    POST /{token}/api/analyze   Analyze one Java source, optionally rewriting it
    GET  /health                Health check
"""
from __future__ import annotations

import logging
import os

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from staticizer.driver import analyze_source

log = logging.getLogger(__name__)

# ── Configuration ───────────────────────────────────────────────────────────────

_VALID_TOKEN: str = os.environ.get("STATICIZER_WEB_TOKEN", "")
_BASE_PATH: str = (os.environ.get("STATICIZER_BASE_PATH", "") or "").rstrip("/")
_MAX_SOURCE_BYTES: int = int(os.environ.get("STATICIZER_MAX_SOURCE_BYTES", "1000000"))

# ── App ─────────────────────────────────────────────────────────────────────────

app = FastAPI(title="Staticizer", docs_url=None, redoc_url=None)


class AnalyzeRequest(BaseModel):
    source: str
    apply: bool = False
    graph: bool = False


# ── Helpers ─────────────────────────────────────────────────────────────────────

def _check_token(token: str) -> None:
    if _VALID_TOKEN and token != _VALID_TOKEN:
        raise HTTPException(status_code=403, detail="Invalid access token")


def _analyze(req: AnalyzeRequest) -> dict:
    src = req.source.encode("utf-8")
    if len(src) > _MAX_SOURCE_BYTES:
        raise HTTPException(status_code=413, detail=f"Source exceeds {_MAX_SOURCE_BYTES} bytes")
    analysis = analyze_source(src)
    log.info("Analyzed %d classes, %d eligible methods", len(analysis.classes), analysis.eligible_count)
    return {
        "package": analysis.unit.package,
        "classes": [c.to_dict(with_graph=req.graph) for c in analysis.classes],
        "eligible": analysis.eligible_count,
        "source": analysis.staticized().decode("utf-8") if req.apply else None,
    }


# ── Routes ──────────────────────────────────────────────────────────────────────

# When STATICIZER_WEB_TOKEN is unset, also serve at / or /{base_path}/ (no token in URL)
if not _VALID_TOKEN:

    @app.post(f"{_BASE_PATH}/api/analyze")
    def analyze_root(req: AnalyzeRequest):
        return _analyze(req)


@app.post(_BASE_PATH + "/{token}/api/analyze")
def analyze(token: str, req: AnalyzeRequest):
    _check_token(token)
    return _analyze(req)


# ── Health check ────────────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    return {"status": "ok"}
