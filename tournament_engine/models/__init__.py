# Import all models here to ensure they are registered with Base
from .team import Team
from .tournament import Tournament
from .stage import Stage, StageTeam, Group, StagePromotion
from .fixture import Fixture
from .ranking import Ranking
from .promotion_audit import PromotionAudit
