from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tournament_engine.services import stage_service
from tournament_engine.schemas import fixture_schemas
from tournament_engine.api.dependencies import get_db

router = APIRouter()

@router.post("/{fixture_id}/result", response_model=fixture_schemas.FixtureRead)
async def submit_result_endpoint(
    fixture_id: int,
    result_in: fixture_schemas.FixtureResultSubmit,
    db: Session = Depends(get_db),
):
    return stage_service.submit_result(db=db, fixture_id=fixture_id, result=result_in)

@router.put("/{fixture_id}/status", response_model=fixture_schemas.FixtureRead)
async def set_fixture_status_endpoint(
    fixture_id: int,
    status_in: fixture_schemas.FixtureStatusUpdate,
    db: Session = Depends(get_db),
):
    return stage_service.set_fixture_status(db=db, fixture_id=fixture_id, status=status_in.status)
