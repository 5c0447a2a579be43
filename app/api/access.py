from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.links import AccessOut, UnlockIn
from app.services.access_gate import AccessResult, AccessState, LinkAccessGate

# Public: visitors reach links anonymously
router = APIRouter(prefix="/l", tags=["access"])

_STATUS = {
    AccessState.NOT_FOUND: 404,
    AccessState.EXPIRED: 410,
    AccessState.PASSWORD_REQUIRED: 200,
    AccessState.GRANTED: 200,
}

def _respond(result: AccessResult, response: Response) -> AccessOut:
    response.status_code = 401 if result.password_rejected else _STATUS[result.state]
    return AccessOut(
        state=result.state.value,
        link_id=result.link_id,
        title=result.title,
        target_url=result.target_url,
        expires_at=result.expires_at,
        password_rejected=result.password_rejected,
    )

@router.get("/{link_id}", response_model=AccessOut)
def open_link(link_id: str, response: Response, db: Session = Depends(get_db)):
    return _respond(LinkAccessGate(db).visit(link_id), response)

@router.post("/{link_id}/unlock", response_model=AccessOut)
def unlock_link(link_id: str, payload: UnlockIn, response: Response, db: Session = Depends(get_db)):
    return _respond(LinkAccessGate(db).visit(link_id, password=payload.password), response)
