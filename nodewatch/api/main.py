from __future__ import annotations

from fastapi import FastAPI

from nodewatch.api.routers import health, nodes, rpc, snapshots

app = FastAPI(title="nodewatch API")

app.include_router(rpc.router)
app.include_router(snapshots.router)
app.include_router(nodes.router)
app.include_router(health.router)
