"""FastAPI application serving the node dashboard and storage endpoints."""

from __future__ import annotations

import json
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from ..clients.http import UpstreamError
from ..runtime import DashboardRuntime
from ..services.alerting import AlertRule
from ..services.ipfs_data import ClusterUnavailableError
from ..services.storage_metrics import ACTIONS

logger = logging.getLogger(__name__)

runtime = DashboardRuntime.bootstrap()
_dashboard_max_age = float(os.environ.get("IPFS_DASHBOARD_CACHE_SECONDS", "5"))


@asynccontextmanager
async def _lifespan(app: FastAPI):
    logger.info(
        "Node dashboard watching %d IPFS node(s); cluster at %s",
        len(runtime.config.nodes),
        runtime.config.cluster.api_url,
    )
    try:
        yield
    finally:
        runtime.close()


app = FastAPI(title="IPFS Node Dashboard API", version="0.1.0", lifespan=_lifespan)

_cors_origins = [origin.strip() for origin in os.environ.get("IPFS_DASHBOARD_CORS_ORIGINS", "*").split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins or ["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


class AuthContext(BaseModel):
    user_id: Optional[str] = None
    roles: list[str] = Field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        allowed = {role.lower() for role in runtime.config.auth.admin_roles}
        return bool({role.lower() for role in self.roles}.intersection(allowed))


async def get_auth_context(request: Request) -> AuthContext:
    """Identity forwarded by the session layer in front of this service."""
    roles = request.headers.get("x-user-roles", "").replace(",", " ").split()
    return AuthContext(user_id=request.headers.get("x-user-id") or None, roles=roles)


def require_user(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not ctx.user_id:
        raise HTTPException(status_code=401, detail="x-user-id header required")
    return ctx


def require_admin(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not ctx.is_admin:
        raise HTTPException(status_code=403, detail="admin role required")
    return ctx


def _upstream_failure(exc: UpstreamError) -> HTTPException:
    if isinstance(exc, ClusterUnavailableError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=502, detail=str(exc))


class ActivityRequest(BaseModel):
    action: str
    file_name: Optional[str] = None
    file_size: Optional[int] = Field(default=None, ge=0)
    ipfs_hash: Optional[str] = None
    response_time: Optional[int] = Field(default=None, ge=0)
    success: bool = True
    error_message: Optional[str] = None


class AggregateRequest(BaseModel):
    day: Optional[date] = None


class AlertRuleRequest(BaseModel):
    name: str
    metric: str
    threshold: float
    comparator: str = ">="
    severity: str = "warning"


@app.get("/api/health")
def health():
    return {"status": "ok", "nodes": len(runtime.config.nodes)}


@app.get("/api/nodes")
def list_nodes():
    try:
        return runtime.network_overview.fetch_nodes()
    except Exception:
        logger.exception("Error fetching node metrics")
        raise HTTPException(status_code=500, detail="Failed to fetch node metrics")


@app.get("/api/nodes/dashboard")
def get_dashboard(refresh: bool = False, ctx: AuthContext = Depends(require_admin)):
    try:
        snapshot = runtime.get_dashboard(0.0 if refresh else _dashboard_max_age)
    except Exception:
        logger.exception("Error building node dashboard")
        raise HTTPException(status_code=500, detail="Failed to fetch node metrics")
    payload = snapshot.to_dict()
    payload["activity"] = runtime.activity_feed.recent()
    return payload


@app.get("/api/nodes/summary")
def get_summary(ctx: AuthContext = Depends(require_admin)):
    snapshot = runtime.get_dashboard(_dashboard_max_age)
    return snapshot.summary.to_dict()


@app.get("/api/nodes/stats")
def get_node_stats(ctx: AuthContext = Depends(require_admin)):
    return {name: asdict(stats) for name, stats in runtime.ipfs_data.get_all_node_stats().items()}


@app.get("/api/ipfs/health")
def ipfs_health():
    return runtime.ipfs_data.health_check()


@app.get("/api/cluster/status")
def cluster_status(ctx: AuthContext = Depends(require_admin)):
    return runtime.cluster_monitor.get_status().to_dict()


@app.get("/api/cluster/pins")
def list_pins(ctx: AuthContext = Depends(require_admin)):
    try:
        pins = runtime.ipfs_data.get_cluster_pins()
    except UpstreamError as exc:
        raise _upstream_failure(exc) from exc
    return [asdict(pin) for pin in pins]


@app.get("/api/cluster/pins/{cid}")
def get_pin(cid: str, ctx: AuthContext = Depends(require_admin)):
    try:
        pin = runtime.ipfs_data.get_pin_status(cid)
    except UpstreamError as exc:
        raise _upstream_failure(exc) from exc
    if pin is None:
        raise HTTPException(status_code=404, detail=f"Pin {cid} not found")
    return asdict(pin)


@app.delete("/api/cluster/pins/{cid}")
def delete_pin(cid: str, ctx: AuthContext = Depends(require_admin)):
    try:
        runtime.ipfs_data.unpin_file(cid)
    except UpstreamError as exc:
        raise _upstream_failure(exc) from exc
    return {"cid": cid, "status": "unpinned"}


@app.post("/api/cluster/pins")
def upload_pin(
    file: UploadFile = File(...),
    metadata: Optional[str] = Form(default=None),
    ctx: AuthContext = Depends(require_user),
):
    if not file.filename:
        raise HTTPException(status_code=400, detail="File name is required")
    try:
        meta = json.loads(metadata) if metadata else {}
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail="metadata must be a JSON object") from exc
    if not isinstance(meta, dict):
        raise HTTPException(status_code=400, detail="metadata must be a JSON object")

    content = file.file.read()
    try:
        result = runtime.ipfs_data.pin_file(file.filename, content, {str(k): str(v) for k, v in meta.items()})
    except UpstreamError as exc:
        runtime.storage_metrics.log_activity(
            ctx.user_id,
            "upload",
            file_name=file.filename,
            file_size=len(content),
            success=False,
            error_message=str(exc),
        )
        raise _upstream_failure(exc) from exc
    runtime.storage_metrics.log_activity(
        ctx.user_id,
        "upload",
        file_name=file.filename,
        file_size=len(content),
        ipfs_hash=result["cid"],
    )
    return result


@app.post("/api/storage/activity")
def log_activity(payload: ActivityRequest, ctx: AuthContext = Depends(require_user)):
    if payload.action not in ACTIONS:
        raise HTTPException(status_code=400, detail=f"action must be one of {', '.join(ACTIONS)}")
    activity = runtime.storage_metrics.log_activity(ctx.user_id, **payload.model_dump())
    return activity.to_dict()


@app.get("/api/storage/activity")
def recent_activity(limit: int = Query(50, ge=1, le=1000), ctx: AuthContext = Depends(require_user)):
    return [activity.to_dict() for activity in runtime.storage_metrics.get_recent_activity(ctx.user_id, limit)]


@app.get("/api/storage/metrics")
def storage_metrics(days: int = Query(30, ge=1, le=366), ctx: AuthContext = Depends(require_user)):
    return [summary.to_dict() for summary in runtime.storage_metrics.get_user_metrics(ctx.user_id, days)]


@app.get("/api/storage/metrics/current")
def current_storage_metrics(ctx: AuthContext = Depends(require_user)):
    return runtime.storage_metrics.get_user_current_metrics(ctx.user_id).to_dict()


@app.post("/api/storage/metrics:aggregate")
def aggregate_storage_metrics(payload: AggregateRequest, ctx: AuthContext = Depends(require_user)):
    day = payload.day or datetime.now(timezone.utc).date()
    return runtime.storage_metrics.aggregate_daily_metrics(ctx.user_id, day).to_dict()


@app.post("/api/storage/sync")
def sync_storage(ctx: AuthContext = Depends(require_user)):
    return runtime.storage_metrics.sync_with_cluster(ctx.user_id).to_dict()


@app.get("/ops/alerts")
def list_alerts(ctx: AuthContext = Depends(require_admin)):
    manager = runtime.alert_manager
    return {
        "rules": [asdict(rule) for rule in manager.rules],
        "recent": list(manager.recent_alerts),
    }


@app.post("/ops/alerts/rules")
def upsert_alert_rule(payload: AlertRuleRequest, ctx: AuthContext = Depends(require_admin)):
    try:
        rule = AlertRule(**payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return asdict(runtime.alert_manager.upsert_rule(rule))


@app.delete("/ops/alerts/rules/{name}")
def delete_alert_rule(name: str, ctx: AuthContext = Depends(require_admin)):
    if not runtime.alert_manager.remove_rule(name):
        raise HTTPException(status_code=404, detail=f"Alert rule {name} not found")
    return {"removed": name}
