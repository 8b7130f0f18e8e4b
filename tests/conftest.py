import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tournament_engine.core.database import Base
from tournament_engine.models import Team
from tournament_engine.schemas.fixture_schemas import FixtureMetadata, FixtureRead
from tournament_engine.schemas.ranking_schemas import StageTeamRead


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def teams(db_session):
    """Eight directory teams with ids 1..8."""
    created = [Team(name=f"Team {i}", captain_id=100 + i) for i in range(1, 9)]
    db_session.add_all(created)
    db_session.commit()
    for team in created:
        db_session.refresh(team)
    return created


@pytest.fixture
def make_team():
    def _make(team_id, seed=None, group_id=None):
        return StageTeamRead(team_id=team_id, seed=seed if seed is not None else team_id, group_id=group_id)
    return _make


@pytest.fixture
def make_fixture():
    """Build a FixtureRead; completed with a derived winner when both scores are given."""
    counter = {"next_id": 1}

    def _make(first, second, first_score=None, second_score=None, status=None, winner="derive",
              round=1, match_order=1, leg=1, group_id=None, is_third_place=False, score_details=None):
        fixture_id = counter["next_id"]
        counter["next_id"] += 1
        scored = first_score is not None and second_score is not None
        if winner == "derive":
            winner = None
            if scored and first_score != second_score:
                winner = first if first_score > second_score else second
        return FixtureRead(
            id=fixture_id,
            stage_id=1,
            group_id=group_id,
            first_team_id=first,
            second_team_id=second,
            status=status or ("completed" if scored else "upcoming"),
            first_team_score=first_score,
            second_team_score=second_score,
            score_details=score_details,
            winning_team_id=winner,
            metadata=FixtureMetadata(round=round, match_order=match_order, leg=leg, is_third_place=is_third_place),
        )

    return _make
