from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db
from app.api.deps import get_current_user, get_storage
from app.api.deps_billing import require_selected_plan
from app.models.link import Link
from app.models.user import User
from app.schemas.links import CreateLinkIn, LinkOut, LinkStatsOut
from app.services.link_store import LinkStore
from app.services.links import LinkService
from app.services.storage import LocalFileStorage, UploadedFile
from app.utils.dt import as_utc_aware

router = APIRouter(prefix="/links", tags=["links"], dependencies=[Depends(require_selected_plan)])

def _link_out(link: Link) -> LinkOut:
    return LinkOut(
        id=link.id,
        title=link.title,
        target_url=link.target_url,
        share_url=f"{settings.app_base_url.rstrip('/')}/l/{link.id}",
        is_protected=link.is_protected,
        expires_at=as_utc_aware(link.expires_at),
        view_count=link.view_count,
        file_name=link.file_name,
        file_size=link.file_size,
        created_at=as_utc_aware(link.created_at),
    )

# Protect an external URL
@router.post("", response_model=LinkOut, status_code=201)
def create_link(
    payload: CreateLinkIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: LocalFileStorage = Depends(get_storage),
):
    link = LinkService(db, storage).create_link(
        user.id,
        payload.title,
        target_url=str(payload.url),
        password=payload.password,
        expires_at=payload.expires_at,
    )
    return _link_out(link)

# Upload a file and protect its URL (paid plans only)
# plain def so bcrypt, the session and the disk write run in the threadpool
@router.post("/upload", response_model=LinkOut, status_code=201)
def create_file_link(
    title: str = Form(...),
    file: UploadFile = File(...),
    password: str | None = Form(None),
    expires_at: datetime | None = Form(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: LocalFileStorage = Depends(get_storage),
):
    if file.size is not None:
        storage.check_size(file.size)
    # never buffer more than one byte past the limit
    data = file.file.read(storage.max_bytes + 1)
    storage.check_size(len(data))

    upload = UploadedFile(
        filename=file.filename or "file",
        data=data,
        content_type=file.content_type,
    )
    link = LinkService(db, storage).create_link(
        user.id,
        title,
        upload=upload,
        password=password or None,
        expires_at=expires_at,
    )
    return _link_out(link)

@router.get("", response_model=list[LinkOut])
def list_links(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [_link_out(link) for link in LinkStore(db).list_links(user.id)]

@router.get("/stats", response_model=LinkStatsOut)
def link_stats(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    stats = LinkStore(db).link_stats(user.id)
    return LinkStatsOut(**asdict(stats))

@router.delete("/{link_id}", status_code=204)
def delete_link(
    link_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    storage: LocalFileStorage = Depends(get_storage),
):
    LinkService(db, storage).delete_link(link_id, user.id)
    return Response(status_code=204)
