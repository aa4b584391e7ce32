from __future__ import annotations

from fastapi import Header, HTTPException, Request


def require_api_key(request: Request, x_api_key: str | None = Header(default=None)) -> None:
    expected = request.app.state.runtime.settings.api_key
    if not expected:
        return
    if (x_api_key or "") != expected:
        raise HTTPException(status_code=401, detail="invalid API key")
