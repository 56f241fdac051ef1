from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.deps import get_current_active_user, get_tenant_session
from timetrack.db.models.users import User
from timetrack.schemas.clients import ClientCreate, ClientRead, ClientUpdate
from timetrack.schemas.projects import ProjectRead
from timetrack.schemas.time_logs import UnpaidProjectGroup
from timetrack.services.clients import ClientService
from timetrack.services.exports import dated_filename, export_dataframe
from timetrack.services.time_logs import TimeLogService

router = APIRouter(prefix="/clients", tags=["Clients"])


# PUBLIC_INTERFACE
@router.get("", response_model=List[ClientRead], summary="List clients")
async def list_clients(
    search: Optional[str] = Query(None, description="Filter by name"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[ClientRead]:
    clients = await ClientService(session).list_clients(user, search=search, limit=limit, offset=offset)
    return [ClientRead.model_validate(c) for c in clients]


# PUBLIC_INTERFACE
@router.get("/export", summary="Export clients", response_class=StreamingResponse)
async def export_clients(
    export_format: str = Query("csv", alias="format", pattern="^(csv|xlsx|pdf)$"),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> StreamingResponse:
    df = await ClientService(session).export_frame(user)
    return export_dataframe(df, dated_filename("clients"), export_format)


# PUBLIC_INTERFACE
@router.post("", response_model=ClientRead, status_code=201, summary="Create client")
async def create_client(
    payload: ClientCreate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> ClientRead:
    client = await ClientService(session).create(user, payload)
    return ClientRead.model_validate(client)


# PUBLIC_INTERFACE
@router.get("/{client_id}", response_model=ClientRead, summary="Get client")
async def get_client(
    client_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> ClientRead:
    client = await ClientService(session).get(user, client_id)
    return ClientRead.model_validate(client)


# PUBLIC_INTERFACE
@router.put("/{client_id}", response_model=ClientRead, summary="Update client")
async def update_client(
    client_id: UUID,
    payload: ClientUpdate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> ClientRead:
    client = await ClientService(session).update(user, client_id, payload)
    return ClientRead.model_validate(client)


# PUBLIC_INTERFACE
@router.delete("/{client_id}", status_code=204, summary="Delete client")
async def delete_client(
    client_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> Response:
    await ClientService(session).delete(user, client_id)
    return Response(status_code=204)


# PUBLIC_INTERFACE
@router.get("/{client_id}/projects", response_model=List[ProjectRead], summary="Client projects")
async def client_projects(
    client_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[ProjectRead]:
    projects = await ClientService(session).projects(user, client_id)
    return [ProjectRead.model_validate(p) for p in projects]


# PUBLIC_INTERFACE
@router.get(
    "/{client_id}/unpaid-time-logs",
    response_model=List[UnpaidProjectGroup],
    summary="Unpaid time by project",
    description="Approved, billable, unpaid and uninvoiced logs of the client's projects, grouped per project.",
)
async def unpaid_by_client(
    client_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[UnpaidProjectGroup]:
    groups = await TimeLogService(session).unpaid_by_client(user, client_id)
    return [UnpaidProjectGroup.model_validate(g, from_attributes=True) for g in groups]
