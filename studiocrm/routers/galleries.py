from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from studiocrm.core.logging_setup import get_logger
from studiocrm.core.security import create_gallery_token, gallery_token_matches
from studiocrm.db import galleries_crud
from studiocrm.db.database import get_db
from studiocrm.db.errors import CrmError
from studiocrm.routers.deps import get_current_user, require_writer
from studiocrm.schemas.galleries import GalleryAccessIn, GalleryCreateIn, GalleryImageIn, GalleryUpdateIn

LOG = get_logger(__name__)
router = APIRouter(tags=["galleries"])


@router.get("/galleries")
def list_galleries(
    search: str | None = None,
    client_id: int | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    rows = galleries_crud.list_galleries(db, search=search, client_id=client_id, limit=limit)
    return {"ok": True, "galleries": [galleries_crud.to_public_dict(g) for g in rows]}


@router.get("/galleries/{gallery_id}")
def get_gallery(gallery_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    row = galleries_crud.get_gallery(db, gallery_id)
    return {"ok": True, "gallery": galleries_crud.to_public_dict(row, detail=True)}


@router.post("/galleries")
def create_gallery(payload: GalleryCreateIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    row = galleries_crud.create_gallery(db, payload.model_dump(exclude_none=True))
    return {"ok": True, "gallery": galleries_crud.to_public_dict(row)}


@router.patch("/galleries/{gallery_id}")
def update_gallery(gallery_id: int, payload: GalleryUpdateIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    row = galleries_crud.update_gallery(db, gallery_id, payload.model_dump(exclude_unset=True))
    return {"ok": True, "gallery": galleries_crud.to_public_dict(row)}


@router.post("/galleries/{gallery_id}/images")
def add_image(gallery_id: int, payload: GalleryImageIn, db: Session = Depends(get_db), user=Depends(require_writer)):
    image = galleries_crud.add_image(db, gallery_id, filename=payload.filename, url=payload.url, title=payload.title)
    return {"ok": True, "image": {"id": image.id, "filename": image.filename, "url": image.url, "title": image.title}}


@router.delete("/galleries/{gallery_id}")
def delete_gallery(gallery_id: int, db: Session = Depends(get_db), user=Depends(require_writer)):
    galleries_crud.delete_gallery(db, gallery_id)
    return {"ok": True}


# --- public (no admin login) ----------------------------------------------------


@router.post("/galleries/public/{slug}/access")
def gallery_access(slug: str, payload: GalleryAccessIn, db: Session = Depends(get_db)):
    try:
        gallery = galleries_crud.check_access(db, slug, payload.password)
    except CrmError as e:
        LOG.info("Gallery access denied slug=%s: %s", slug, e)
        return JSONResponse(status_code=403, content={"detail": str(e)})
    return {
        "ok": True,
        "gallery": galleries_crud.to_public_dict(gallery, detail=True),
        "access_token": create_gallery_token(gallery.slug),
    }


@router.get("/galleries/public/{slug}")
def public_gallery(
    slug: str,
    x_gallery_token: str | None = Header(default=None),
    db: Session = Depends(get_db),
):
    gallery = galleries_crud.get_gallery_by_slug(db, slug)
    if not gallery.is_public:
        return JSONResponse(status_code=404, content={"detail": "Gallery not found"})
    if gallery.password_hash and not (x_gallery_token and gallery_token_matches(x_gallery_token, gallery.slug)):
        return JSONResponse(status_code=401, content={"detail": "Gallery password required"})
    return {"ok": True, "gallery": galleries_crud.to_public_dict(gallery, detail=True)}
