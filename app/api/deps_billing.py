from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user
from app.models.user import User
from app.services.errors import EntitlementNotFound, NoPlanSelected
from app.services.ledger import Entitlement, EntitlementLedger

def require_selected_plan(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Entitlement:
    """Dashboard areas are closed until onboarding picked a plan."""
    try:
        return EntitlementLedger(db).get_entitlement(user.id)
    except EntitlementNotFound:
        raise NoPlanSelected() from None
