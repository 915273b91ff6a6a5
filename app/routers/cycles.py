"""
Review cycle endpoints.

Thin handlers: parse the request, call CycleService, wrap the result.
Authentication is handled upstream; X-Actor-Id identifies the caller for
the audit trail.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session

from app.core.schemas import ApiResponse
from app.database import get_db
from app.schemas.cycle import CycleCreate, CycleListResponse, CycleResponse, CycleUpdate, SweepResult
from app.services.cycle_service import CycleService

router = APIRouter(prefix="/cycles")


def get_cycle_service(db: Session = Depends(get_db)) -> CycleService:
    return CycleService(db)


@router.get("", response_model=ApiResponse[CycleListResponse])
def list_cycles(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    status: Optional[str] = Query(None, description="Comma-separated statuses, e.g. COMPLETED,PUBLISHED"),
    service: CycleService = Depends(get_cycle_service),
):
    return ApiResponse.ok(service.list_cycles(page=page, limit=limit, status=status))


@router.post("", response_model=ApiResponse[CycleResponse], status_code=status.HTTP_201_CREATED)
def create_cycle(
    payload: CycleCreate,
    actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    service: CycleService = Depends(get_cycle_service),
):
    cycle = service.create_cycle(payload, actor_id=actor_id)
    return ApiResponse.ok(CycleResponse.model_validate(cycle))


# Declared before /{cycle_id} routes so the literal path is matched first
@router.post("/transitions/run", response_model=ApiResponse[SweepResult])
def run_transitions(service: CycleService = Depends(get_cycle_service)):
    """Run the time-driven sweep now, with today's date."""
    return ApiResponse.ok(service.sweep())


@router.get("/{cycle_id}", response_model=ApiResponse[CycleResponse])
def get_cycle(cycle_id: int, service: CycleService = Depends(get_cycle_service)):
    return ApiResponse.ok(CycleResponse.model_validate(service.get_cycle(cycle_id)))


@router.patch("/{cycle_id}", response_model=ApiResponse[CycleResponse])
def update_cycle(
    cycle_id: int,
    payload: CycleUpdate,
    actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    service: CycleService = Depends(get_cycle_service),
):
    cycle = service.update_cycle(cycle_id, payload, actor_id=actor_id)
    return ApiResponse.ok(CycleResponse.model_validate(cycle))


@router.delete("/{cycle_id}", response_model=ApiResponse[None])
def delete_cycle(
    cycle_id: int,
    actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    service: CycleService = Depends(get_cycle_service),
):
    service.delete_cycle(cycle_id, actor_id=actor_id)
    return ApiResponse.ok(None, metadata={"message": "Review cycle deleted successfully."})


@router.post("/{cycle_id}/activate", response_model=ApiResponse[CycleResponse])
def activate_cycle(
    cycle_id: int,
    actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    service: CycleService = Depends(get_cycle_service),
):
    cycle = service.activate(cycle_id, actor_id=actor_id)
    return ApiResponse.ok(CycleResponse.model_validate(cycle))


@router.post("/{cycle_id}/publish", response_model=ApiResponse[CycleResponse])
def publish_cycle(
    cycle_id: int,
    actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    service: CycleService = Depends(get_cycle_service),
):
    cycle = service.publish(cycle_id, actor_id=actor_id)
    return ApiResponse.ok(
        CycleResponse.model_validate(cycle),
        metadata={"message": "Review cycle published successfully. Results are now visible."}
    )
