"""WebSocket endpoint for the tenant dashboard.

Protocol:
- Client connects with an ``accessToken`` cookie, ``?token=`` or a Bearer header
- Server sends: {"type": "connection-rejected", "data": {"reason": ...}} then
  closes with 4401 when the token is missing or invalid
- Client sends: {"type": "ping"}  ->  server replies {"type": "pong", ...}
- Client sends: {"type": "request:current-state"}  ->  server replies
  {"type": "reconnected", "data": {"timestamp", "kpis", "matches"}}
- Server pushes as they occur: "kpi-invalidated" ({"reason", "kpis", "timestamp"}),
  "matches-updated", and "business-created/updated/deleted" / "metrics-updated"
"""

from fastapi import APIRouter, Depends, WebSocket

from leasehub.app.deps import get_gateway
from leasehub.services.realtime_gateway import RealtimeGateway

router = APIRouter(tags=["websocket"])


@router.websocket("/ws/dashboard")
async def dashboard_socket(
    websocket: WebSocket,
    gateway: RealtimeGateway = Depends(get_gateway),
):
    await gateway.serve(websocket)
