from __future__ import annotations

import re
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from studiocrm.core.security import hash_password, verify_password
from studiocrm.db import clients_crud
from studiocrm.db.errors import CrmError, CrmNotFound
from studiocrm.db.models import Gallery, GalleryImage, utcnow
from studiocrm.db.utils import apply_updates, clamp_limit, iso, like

GALLERY_FIELDS = ("title", "description", "cover_image", "is_public", "client_id")

_UMLAUTS = str.maketrans({"ä": "ae", "ö": "oe", "ü": "ue", "ß": "ss"})


def slugify(text: str) -> str:
    s = text.strip().lower().translate(_UMLAUTS)
    s = re.sub(r"[^a-z0-9]+", "-", s).strip("-")
    return s or "gallery"


def unique_slug(db: Session, title: str, *, exclude_id: int | None = None) -> str:
    base = slugify(title)
    slug = base
    n = 2
    while True:
        q = db.query(Gallery.id).filter(Gallery.slug == slug)
        if exclude_id is not None:
            q = q.filter(Gallery.id != exclude_id)
        if q.first() is None:
            return slug
        slug = f"{base}-{n}"
        n += 1


def list_galleries(
    db: Session, *, search: str | None = None, client_id: int | None = None, limit: int | None = None
) -> list[Gallery]:
    q = db.query(Gallery)
    if search and search.strip():
        pattern = like(search)
        q = q.filter(or_(func.lower(Gallery.title).like(pattern), func.lower(Gallery.slug).like(pattern)))
    if client_id is not None:
        q = q.filter(Gallery.client_id == client_id)
    return q.order_by(Gallery.created_at.desc(), Gallery.id.desc()).limit(clamp_limit(limit)).all()


def get_gallery(db: Session, gallery_id: int) -> Gallery:
    row = db.get(Gallery, gallery_id)
    if row is None:
        raise CrmNotFound("gallery", gallery_id)
    return row


def get_gallery_by_slug(db: Session, slug: str) -> Gallery:
    row = db.query(Gallery).filter(Gallery.slug == slug.strip().lower()).first()
    if row is None:
        raise CrmNotFound("gallery", slug)
    return row


def create_gallery(db: Session, data: dict[str, Any]) -> Gallery:
    title = (data.get("title") or "").strip()
    if not title:
        raise CrmError("title is required")
    if data.get("client_id"):
        clients_crud.get_client(db, data["client_id"])

    row = Gallery(slug=unique_slug(db, data.get("slug") or title), is_public=True)
    apply_updates(row, {**data, "title": title}, GALLERY_FIELDS)
    if data.get("password"):
        row.password_hash = hash_password(data["password"])
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def update_gallery(db: Session, gallery_id: int, data: dict[str, Any]) -> Gallery:
    row = get_gallery(db, gallery_id)
    if data.get("client_id"):
        clients_crud.get_client(db, data["client_id"])
    changed = apply_updates(row, data, GALLERY_FIELDS)
    if "password" in data:
        # empty string removes the password
        row.password_hash = hash_password(data["password"]) if data["password"] else None
        changed.append("password")
    if changed:
        row.updated_at = utcnow()
        db.commit()
        db.refresh(row)
    return row


def add_image(db: Session, gallery_id: int, *, filename: str, url: str, title: str | None = None) -> GalleryImage:
    gallery = get_gallery(db, gallery_id)
    if not filename.strip() or not url.strip():
        raise CrmError("filename and url are required")
    image = GalleryImage(filename=filename.strip(), url=url.strip(), title=title, sort_order=len(gallery.images))
    gallery.images.append(image)
    if not gallery.cover_image:
        gallery.cover_image = image.url
    gallery.updated_at = utcnow()
    db.commit()
    db.refresh(image)
    return image


def delete_gallery(db: Session, gallery_id: int) -> None:
    db.delete(get_gallery(db, gallery_id))
    db.commit()


def check_access(db: Session, slug: str, password: str | None) -> Gallery:
    """Return the gallery if the visitor may open it, else raise CrmError."""
    gallery = get_gallery_by_slug(db, slug)
    if not gallery.is_public:
        raise CrmError("Gallery is not public")
    if gallery.password_hash:
        if not password or not verify_password(password, gallery.password_hash):
            raise CrmError("Invalid gallery password")
    return gallery


def to_public_dict(row: Gallery, *, detail: bool = False) -> dict[str, Any]:
    out = {
        "id": row.id,
        "title": row.title,
        "slug": row.slug,
        "description": row.description,
        "cover_image": row.cover_image,
        "is_public": row.is_public,
        "is_password_protected": bool(row.password_hash),
        "client_id": row.client_id,
        "image_count": len(row.images),
        "created_at": iso(row.created_at),
    }
    if detail:
        out["images"] = [
            {"id": img.id, "filename": img.filename, "url": img.url, "title": img.title}
            for img in row.images
        ]
    return out
