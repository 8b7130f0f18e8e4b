from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from tournament_engine.services import stage_service
from tournament_engine.schemas import fixture_schemas, promotion_schemas, ranking_schemas, stage_schemas
from tournament_engine.api.dependencies import get_db, get_current_user_id

router = APIRouter()

@router.get("/{stage_id}", response_model=stage_schemas.StageRead)
async def get_stage_endpoint(stage_id: int, db: Session = Depends(get_db)):
    return stage_service.get_stage(db=db, stage_id=stage_id)

# --- Roster ---

@router.put("/{stage_id}/teams", response_model=List[ranking_schemas.StageTeamRead])
async def assign_teams_endpoint(
    stage_id: int,
    assignment_in: stage_schemas.AssignTeamsRequest,
    db: Session = Depends(get_db),
):
    return stage_service.assign_teams(db=db, stage_id=stage_id, assignments=assignment_in.teams)

@router.get("/{stage_id}/teams", response_model=List[ranking_schemas.StageTeamRead])
async def list_stage_teams_endpoint(stage_id: int, db: Session = Depends(get_db)):
    return stage_service.list_stage_teams(db=db, stage_id=stage_id)

@router.post("/{stage_id}/groups", response_model=stage_schemas.GroupRead, status_code=status.HTTP_201_CREATED)
async def create_group_endpoint(
    stage_id: int,
    group_in: stage_schemas.GroupCreate,
    db: Session = Depends(get_db),
):
    return stage_service.create_group(db=db, stage_id=stage_id, group=group_in)

@router.post("/{stage_id}/groups/distribute", response_model=List[stage_schemas.GroupRead])
async def distribute_groups_endpoint(stage_id: int, db: Session = Depends(get_db)):
    return stage_service.auto_assign_groups(db=db, stage_id=stage_id)

# --- Lifecycle ---

@router.post("/{stage_id}/start", response_model=stage_schemas.StageRead)
async def start_stage_endpoint(stage_id: int, db: Session = Depends(get_db)):
    return stage_service.start_stage(db=db, stage_id=stage_id)

@router.post("/{stage_id}/complete", response_model=stage_schemas.StageRead)
async def complete_stage_endpoint(stage_id: int, db: Session = Depends(get_db)):
    return stage_service.complete_stage(db=db, stage_id=stage_id)

@router.post("/{stage_id}/cancel", response_model=stage_schemas.StageRead)
async def cancel_stage_endpoint(stage_id: int, db: Session = Depends(get_db)):
    return stage_service.cancel_stage(db=db, stage_id=stage_id)

# --- Fixtures ---

@router.post("/{stage_id}/fixtures/generate", response_model=List[fixture_schemas.FixtureRead], status_code=status.HTTP_201_CREATED)
async def generate_fixtures_endpoint(
    stage_id: int,
    request_in: Optional[fixture_schemas.GenerateFixturesRequest] = None,
    db: Session = Depends(get_db),
):
    request_in = request_in or fixture_schemas.GenerateFixturesRequest()
    return stage_service.generate_fixtures(
        db=db,
        stage_id=stage_id,
        mode=request_in.mode,
        start_at=request_in.start_at,
        auto_schedule=request_in.auto_schedule,
    )

@router.get("/{stage_id}/fixtures/preview", response_model=List[fixture_schemas.FixtureDraft])
async def simulate_fixtures_endpoint(
    stage_id: int,
    auto_schedule: bool = True,
    start_at: Optional[datetime] = None,
    db: Session = Depends(get_db),
):
    return stage_service.simulate_fixtures(db=db, stage_id=stage_id, start_at=start_at, auto_schedule=auto_schedule)

@router.post("/{stage_id}/fixtures", response_model=fixture_schemas.FixtureRead, status_code=status.HTTP_201_CREATED)
async def create_fixture_endpoint(
    stage_id: int,
    fixture_in: fixture_schemas.FixtureCreate,
    db: Session = Depends(get_db),
):
    return stage_service.create_fixture(db=db, stage_id=stage_id, fixture=fixture_in)

@router.get("/{stage_id}/fixtures", response_model=List[fixture_schemas.FixtureRead])
async def list_fixtures_endpoint(stage_id: int, db: Session = Depends(get_db)):
    return stage_service.list_fixtures(db=db, stage_id=stage_id)

# --- Rankings ---

@router.post("/{stage_id}/rankings", response_model=List[ranking_schemas.RankingRow])
async def compute_rankings_endpoint(stage_id: int, db: Session = Depends(get_db)):
    return stage_service.compute_rankings(db=db, stage_id=stage_id)

@router.get("/{stage_id}/rankings", response_model=List[ranking_schemas.RankingRow])
async def list_rankings_endpoint(stage_id: int, db: Session = Depends(get_db)):
    return stage_service.list_rankings(db=db, stage_id=stage_id)

# --- Promotion ---

@router.put("/{stage_id}/promotion", response_model=promotion_schemas.PromotionRead)
async def configure_promotion_endpoint(
    stage_id: int,
    promotion_in: promotion_schemas.PromotionConfigure,
    db: Session = Depends(get_db),
):
    return stage_service.configure_promotion(db=db, stage_id=stage_id, config=promotion_in)

@router.get("/{stage_id}/promotion/preview", response_model=promotion_schemas.PromotionPreview)
async def simulate_promotion_endpoint(stage_id: int, db: Session = Depends(get_db)):
    return stage_service.simulate_promotion(db=db, stage_id=stage_id)

@router.post("/{stage_id}/promotion/execute", response_model=List[promotion_schemas.TeamRead])
async def execute_promotion_endpoint(
    stage_id: int,
    db: Session = Depends(get_db),
    current_user_id: Optional[int] = Depends(get_current_user_id),
):
    return stage_service.execute_promotion(db=db, stage_id=stage_id, acting_user_id=current_user_id)

@router.get("/{stage_id}/promotion/history", response_model=List[promotion_schemas.PromotionAuditRead])
async def promotion_history_endpoint(stage_id: int, db: Session = Depends(get_db)):
    return stage_service.list_promotion_history(db=db, stage_id=stage_id)
