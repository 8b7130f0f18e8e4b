from sqlalchemy import Column, Integer, String
from tournament_engine.core.database import Base

class Team(Base):
    """Team directory entry. The engine only reads these rows."""
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    captain_id = Column(Integer, nullable=True)
