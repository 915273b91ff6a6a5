from typing import List, Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from app.core.schemas import ApiResponse
from app.database import get_db
from app.schemas.score import CalculatedScoreResponse, RecalculationResult
from app.services.score_service import ScoreService

router = APIRouter(prefix="/scores")


def get_score_service(db: Session = Depends(get_db)) -> ScoreService:
    return ScoreService(db)


@router.get("/cycle/{cycle_id}", response_model=ApiResponse[List[CalculatedScoreResponse]])
def list_cycle_scores(cycle_id: int, service: ScoreService = Depends(get_score_service)):
    scores = service.list_scores_for_cycle(cycle_id)
    return ApiResponse.ok([CalculatedScoreResponse.model_validate(s) for s in scores])


@router.post("/cycle/{cycle_id}/recalculate", response_model=ApiResponse[RecalculationResult])
def recalculate_cycle_scores(
    cycle_id: int,
    actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    service: ScoreService = Depends(get_score_service),
):
    return ApiResponse.ok(service.recompute(cycle_id, actor_id=actor_id))


@router.get("/employee/{employee_id}", response_model=ApiResponse[List[CalculatedScoreResponse]])
def list_employee_scores(employee_id: str, service: ScoreService = Depends(get_score_service)):
    scores = service.list_scores_for_employee(employee_id)
    return ApiResponse.ok([CalculatedScoreResponse.model_validate(s) for s in scores])


@router.get("/employee/{employee_id}/cycle/{cycle_id}", response_model=ApiResponse[CalculatedScoreResponse])
def get_employee_score(employee_id: str, cycle_id: int, service: ScoreService = Depends(get_score_service)):
    return ApiResponse.ok(CalculatedScoreResponse.model_validate(service.get_score(employee_id, cycle_id)))
