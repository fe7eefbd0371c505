"""
API Routes for Proxy Control

Provides endpoints for:
- MITM proxy start / stop / status
- Decision engine statistics
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from mimic.interception.decision import InterceptDecisionEngine
from .dependencies import get_decision_engine

router = APIRouter(prefix="/api", tags=["proxy"])


def _get_proxy_server(request: Request):
    proxy_server = getattr(request.app.state, "proxy_server", None)
    if proxy_server is None:
        raise HTTPException(status_code=500, detail="Proxy server not initialized")
    return proxy_server


@router.post("/proxy/start")
async def start_proxy(request: Request):
    """Start the MITM interception proxy"""
    proxy_server = _get_proxy_server(request)

    if proxy_server.is_running():
        raise HTTPException(status_code=400, detail="Proxy already running")

    try:
        await proxy_server.start_async()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to start proxy: {str(e)}")
    return {"status": "started", "message": "Proxy server started successfully"}


@router.post("/proxy/stop")
async def stop_proxy(request: Request):
    """Stop the MITM interception proxy"""
    proxy_server = _get_proxy_server(request)

    if not proxy_server.is_running():
        raise HTTPException(status_code=400, detail="Proxy not running")

    try:
        await proxy_server.stop_async()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to stop proxy: {str(e)}")
    return {"status": "stopped", "message": "Proxy server stopped successfully"}


@router.get("/proxy/status")
async def get_proxy_status(request: Request):
    """Get status and statistics of both proxy transports"""
    proxy_server = getattr(request.app.state, "proxy_server", None)
    http_proxy = getattr(request.app.state, "http_proxy", None)

    return {
        "mitm": proxy_server.get_status() if proxy_server else {"running": False, "error": "Proxy server not initialized"},
        "http": http_proxy.get_status() if http_proxy else {"running": False},
    }


@router.get("/proxy/decisions")
async def get_decision_stats(engine: InterceptDecisionEngine = Depends(get_decision_engine)):
    """Count of SERVE / FORWARD / PASS_THROUGH decisions so far"""
    return engine.get_stats()
