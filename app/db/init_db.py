from sqlalchemy.engine import Engine

from app.db.base import Base

# Register every table on Base.metadata
from app.models.user import User  # noqa: F401
from app.models.plan import Plan  # noqa: F401
from app.models.entitlement import AccountEntitlement  # noqa: F401
from app.models.link import Link  # noqa: F401
from app.models.transaction import Transaction  # noqa: F401


def init_db(engine: Engine) -> None:
    """Create missing tables. There is no migration tool; fine for dev and tests."""
    Base.metadata.create_all(bind=engine)
