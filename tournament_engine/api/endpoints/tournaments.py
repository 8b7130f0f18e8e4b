from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from tournament_engine.services import stage_service
from tournament_engine.schemas import stage_schemas
from tournament_engine.api.dependencies import get_db

router = APIRouter()

@router.post("/", response_model=stage_schemas.TournamentRead, status_code=status.HTTP_201_CREATED)
async def create_tournament_endpoint(
    tournament_in: stage_schemas.TournamentCreate,
    db: Session = Depends(get_db),
):
    return stage_service.create_tournament(db=db, tournament=tournament_in)

@router.get("/{tournament_id}", response_model=stage_schemas.TournamentRead)
async def get_tournament_endpoint(tournament_id: int, db: Session = Depends(get_db)):
    return stage_service.get_tournament(db=db, tournament_id=tournament_id)

@router.post("/{tournament_id}/stages", response_model=stage_schemas.StageRead, status_code=status.HTTP_201_CREATED)
async def create_stage_endpoint(
    tournament_id: int,
    stage_in: stage_schemas.StageCreate,
    db: Session = Depends(get_db),
):
    return stage_service.create_stage(db=db, tournament_id=tournament_id, stage=stage_in)
