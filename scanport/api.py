from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from scanport.log_stream import LogStream
from scanport.probe import ProbeError
from scanport.scanner import ScanRequest, scan
from scanport.targets import HOST_IDS, InvalidSubnet, parse_subnet

logger = logging.getLogger("scanport.api")
logging.basicConfig(level=logging.INFO)

app = FastAPI(title="scanport")
log_stream = LogStream()


def _cors_origins() -> list[str]:
    raw_origins = os.environ.get("SCANPORT_ORIGINS", "")
    if not raw_origins:
        return ["http://localhost:5173", "http://127.0.0.1:5173"]
    return [origin.strip() for origin in raw_origins.split(",") if origin.strip()]


DEFAULT_MAX_SUBNETS = 16


def _max_subnets() -> int:
    raw = os.environ.get("SCANPORT_MAX_SUBNETS", "")
    try:
        return int(raw) if raw else DEFAULT_MAX_SUBNETS
    except ValueError:
        logger.warning("Ignoring invalid SCANPORT_MAX_SUBNETS=%r, using %d", raw, DEFAULT_MAX_SUBNETS)
        return DEFAULT_MAX_SUBNETS


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ScanPayload(BaseModel):
    timeout: float = Field(..., ge=0, allow_inf_nan=False, description="Per-host connect timeout in seconds")
    port: int = Field(..., ge=0, le=65535)
    subnets: list[str] = Field(..., min_length=1, description="IPv4 /24 subnets, e.g. 10.60.3.0/24")


class ScanResponse(BaseModel):
    port: int
    scanned: int
    hosts: list[str]


@app.post("/api/scan", response_model=ScanResponse)
async def scan_subnets(payload: ScanPayload) -> ScanResponse:
    limit = _max_subnets()
    if len(payload.subnets) > limit:
        raise HTTPException(status_code=400, detail=f"Too many subnets; max {limit}")
    try:
        prefixes = [parse_subnet(subnet) for subnet in payload.subnets]
    except InvalidSubnet as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    request = ScanRequest(timeout=payload.timeout, port=payload.port, subnets=prefixes)
    subnets = ", ".join(payload.subnets)
    await log_stream.publish(f"Scan of port {payload.port} started on {subnets}")

    try:
        hosts = await asyncio.to_thread(scan, request)
    except ProbeError as exc:
        logger.error("Scan of %s failed: %s", subnets, exc)
        await log_stream.publish(f"Scan of {subnets} failed: {exc}", level="error")
        raise HTTPException(status_code=500, detail="Scan failed") from exc

    await log_stream.publish(f"Scan of {subnets} complete: {len(hosts)} hosts accept port {payload.port}")
    return ScanResponse(port=payload.port, scanned=len(prefixes) * len(HOST_IDS), hosts=hosts)


@app.get("/api/events")
async def recent_events() -> dict[str, Any]:
    return {"events": log_stream.recent()}


@app.websocket("/ws/logs")
async def websocket_logs(websocket: WebSocket) -> None:
    await websocket.accept()
    try:
        async for event in log_stream.subscribe(replay=True):
            await websocket.send_json(event)
    except WebSocketDisconnect:
        return


@app.get("/health")
async def health() -> dict[str, Any]:
    return {"status": "ok"}
