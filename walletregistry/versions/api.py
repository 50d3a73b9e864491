# MIT License
# Copyright (c) 2025 Hashborn

from fastapi import FastAPI, HTTPException, Body
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from pydantic import ValidationError
from typing import Any, Dict, Optional
import logging

from ..protocol.types.common import VersionStoreError
from ..protocol.types.module import Version
from ..observability.metrics import metrics_registry
from .store import LocalVersionStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Wallet Module Version Store")

store: Optional[LocalVersionStore] = None

MAX_COUNT = 100


def _require_store() -> LocalVersionStore:
    if not store:
        raise HTTPException(status_code=503, detail="Version store not initialized")
    return store


@app.get("/versions")
async def list_versions(count: int = 3):
    """Most recent versions, newest first."""
    s = _require_store()
    if count < 0 or count > MAX_COUNT:
        raise HTTPException(status_code=400, detail=f"count must be between 0 and {MAX_COUNT}")
    try:
        versions = s.load_last(count)
    except VersionStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return [v.model_dump(by_alias=True) for v in versions]


@app.get("/versions/{fingerprint}")
async def get_version(fingerprint: str):
    s = _require_store()
    try:
        version = s.get(fingerprint)
    except VersionStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not version:
        raise HTTPException(status_code=404, detail="Version not found")
    return version.model_dump(by_alias=True)


@app.put("/versions/{fingerprint}", status_code=201)
async def put_version(fingerprint: str, body: Dict[str, Any] = Body(...)):
    s = _require_store()
    try:
        version = Version.model_validate(body)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if version.fingerprint != fingerprint:
        raise HTTPException(status_code=400, detail="Fingerprint in path does not match body")
    if not version.verify_fingerprint():
        raise HTTPException(status_code=400, detail="Fingerprint does not match modules")

    try:
        s.upload(version)
    except VersionStoreError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"fingerprint": version.fingerprint, "version": version.version_number}


@app.get("/metrics")
async def get_metrics():
    """Prometheus metrics in text format."""
    return Response(content=generate_latest(metrics_registry), media_type=CONTENT_TYPE_LATEST)
