"""Router containing CRUD operations for clients."""

from __future__ import annotations

from typing import Iterable, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..database import get_db
from ..security import CurrentUser, get_current_user
from ..services import ClientService, ClientServiceError

router = APIRouter()


def _load_client(db: Session, user: CurrentUser, client_id: UUID) -> models.Client:
    client = ClientService.get_client(db, user.id, str(client_id))
    if client is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return client


def _with_stats(
    db: Session, user: CurrentUser, clients: Iterable[models.Client]
) -> List[schemas.ClientRead]:
    try:
        return ClientService.with_stats(db, user.id, clients)
    except ClientServiceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Client statistics are temporarily unavailable",
        ) from exc


@router.get("/", response_model=schemas.ClientListResponse)
def list_clients(
    skip: int = Query(0, ge=0, description="Number of clients to skip"),
    limit: int = Query(50, ge=1, le=200, description="Maximum number of clients to return"),
    search: Optional[str] = Query(
        None, description="Case-insensitive search by name, client id, phone or email"
    ),
    status_filter: Optional[models.ClientStatus] = Query(
        None, alias="status", description="Filter by client status"
    ),
    source: Optional[str] = Query(None, description="Filter by acquisition source"),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.ClientListResponse:
    """Return clients with pagination and optional filters."""
    normalized_search = search.strip() if search else None

    items, total = ClientService.list_clients(
        db,
        user.id,
        status=status_filter,
        source=source,
        search=normalized_search,
        skip=skip,
        limit=limit,
    )
    return schemas.ClientListResponse(
        items=_with_stats(db, user, items), total=total, limit=limit, skip=skip
    )


@router.get("/{client_id}", response_model=schemas.ClientRead)
def get_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.ClientRead:
    """Return one client with totals over its sessions."""
    client = _load_client(db, user, client_id)
    return _with_stats(db, user, [client])[0]


@router.post("/", response_model=schemas.ClientRead, status_code=status.HTTP_201_CREATED)
def create_client(
    client_in: schemas.ClientCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.ClientRead:
    try:
        client = ClientService.create_client(db, user.id, client_in)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ClientServiceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Client could not be saved",
        ) from exc
    return _with_stats(db, user, [client])[0]


@router.patch("/{client_id}", response_model=schemas.ClientRead)
def update_client(
    client_id: UUID,
    client_in: schemas.ClientUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> schemas.ClientRead:
    client = _load_client(db, user, client_id)
    try:
        client = ClientService.update_client(db, client, client_in)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ClientServiceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Client could not be saved",
        ) from exc
    return _with_stats(db, user, [client])[0]


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> None:
    """Delete a client that has no sessions."""
    client = _load_client(db, user, client_id)
    try:
        ClientService.delete_client(db, client)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ClientServiceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Client could not be deleted",
        ) from exc
