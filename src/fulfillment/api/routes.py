"""FastAPI routes for the fulfillment export."""

import io

from fastapi import APIRouter, Depends, Response

from fulfillment.export import write_csv
from identity.collaborators import Identity
from shared.dependencies import privileged_identity, services

fulfillment_router = APIRouter(prefix="/fulfillment", tags=["fulfillment"])


@fulfillment_router.post("/export")
def export_pending_orders(
    batch_size: int | None = None,
    identity: Identity = Depends(privileged_identity),
    svc=Depends(services),
) -> Response:
    """Export pending orders as CSV and confirm them (ADMIN or MASTER)."""
    rows = svc.exporter.export_pending(batch_size=batch_size)
    buffer = io.StringIO()
    write_csv(rows, buffer)
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="orders.csv"'},
    )
