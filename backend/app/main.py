from __future__ import annotations

import logging
import math
import os
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from starlette.middleware.trustedhost import TrustedHostMiddleware

from app.config import SERVICE_NAME, SERVICE_VERSION, allowed_hosts, cors_origins, static_dir
from app.db import Database
from app.ingest import IncomingFile, IngestionOrchestrator, PropertyFields, UserNotFound
from app.ledger import user_transactions
from app.models import MediaUpload, Property, TokenTransaction, User
from app.storage import MediaStore


logger = logging.getLogger(__name__)


# -----------------------
# Dependencies
# -----------------------
def get_database(request: Request) -> Database:
    return request.app.state.database


def get_db(database: Annotated[Database, Depends(get_database)]):
    with database.session_scope() as db:
        yield db


def get_orchestrator(request: Request) -> IngestionOrchestrator:
    return IngestionOrchestrator(request.app.state.database, request.app.state.store)


# -----------------------
# Schemas / serializers
# -----------------------
class CreateUserIn(BaseModel):
    username: str = Field(max_length=80)
    wallet_address: str | None = Field(default=None, max_length=255)


class SearchIn(BaseModel):
    query: str = ""


def _iso(v) -> str | None:
    return v.isoformat() if v is not None else None


def _user_out(u: User) -> dict[str, Any]:
    return {
        "id": str(u.id),
        "username": u.username,
        "wallet_address": u.wallet_address,
        "token_balance": int(u.token_balance or 0),
        "created_at": _iso(u.created_at),
    }


def _property_out(p: Property) -> dict[str, Any]:
    return {
        "id": str(p.id),
        "title": p.title,
        "location": p.location,
        "price": float(p.price or 0.0),
        "description": p.description,
        "bedrooms": p.bedrooms,
        "bathrooms": p.bathrooms,
        "area_sqm": p.area_sqm,
        "user_id": str(p.user_id) if p.user_id else None,
        "content_hash": p.content_hash,
        "created_at": _iso(p.created_at),
    }


def _public_media_url(file_path: str) -> str:
    fp = (file_path or "").strip()
    if fp.startswith(("http://", "https://")):
        return fp
    return "/uploads/" + fp.lstrip("/")


def _media_out(m: MediaUpload) -> dict[str, Any]:
    return {
        "id": str(m.id),
        "property_id": str(m.property_id),
        "user_id": str(m.user_id),
        "file_path": m.file_path,
        "url": _public_media_url(m.file_path),
        "file_type": m.file_type,
        "content_hash": m.content_hash,
        "file_size": int(m.file_size or 0),
        "is_original": bool(m.is_original),
        "tokens_earned": int(m.tokens_earned or 0),
        "uploaded_at": _iso(m.uploaded_at),
    }


def _transaction_out(t: TokenTransaction) -> dict[str, Any]:
    return {
        "id": str(t.id),
        "user_id": str(t.user_id),
        "media_id": str(t.media_id) if t.media_id else None,
        "amount": int(t.amount),
        "transaction_type": t.transaction_type,
        "created_at": _iso(t.created_at),
    }


# -----------------------
# Form parsing (multipart upload)
# -----------------------
def _parse_optional(raw: str | None, cast, field_name: str):
    s = (raw or "").strip()
    if not s:
        return None
    try:
        v = cast(s)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {field_name}")
    # inf/nan cannot be serialised back out as JSON.
    if not math.isfinite(v) or v < 0:
        raise HTTPException(status_code=400, detail=f"Invalid {field_name}")
    return v


def _read_upload(f: UploadFile) -> bytes:
    return f.file.read()


def _parse_user_id(raw: str | None) -> uuid.UUID:
    s = (raw or "").strip()
    if not s:
        raise HTTPException(status_code=400, detail="user_id required")
    try:
        return uuid.UUID(s)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid user_id")


router = APIRouter(prefix="/api")


# -----------------------
# Health
# -----------------------
@router.get("/health")
def health():
    return {"status": "healthy", "service": SERVICE_NAME, "version": SERVICE_VERSION}


# -----------------------
# Properties
# -----------------------
@router.get("/properties")
def list_properties(db: Annotated[Session, Depends(get_db)]):
    try:
        props = db.execute(select(Property).order_by(Property.created_at.desc())).scalars().all()
    except SQLAlchemyError:
        logger.exception("Failed to fetch properties")
        raise HTTPException(status_code=500, detail="Failed to fetch properties")
    return [_property_out(p) for p in props]


@router.get("/properties/{property_id}")
def get_property(property_id: uuid.UUID, db: Annotated[Session, Depends(get_db)]):
    p = db.execute(
        select(Property).options(selectinload(Property.media)).where(Property.id == property_id)
    ).scalar_one_or_none()
    if not p:
        raise HTTPException(status_code=404, detail="Property not found")
    out = _property_out(p)
    out["media"] = [_media_out(m) for m in p.media]
    return out


@router.post("/search")
def search_properties(data: SearchIn, db: Annotated[Session, Depends(get_db)]):
    q = (data.query or "").lower()
    stmt = (
        select(Property)
        .where(
            or_(
                func.lower(Property.title).contains(q, autoescape=True),
                func.lower(Property.location).contains(q, autoescape=True),
                func.lower(Property.description).contains(q, autoescape=True),
            )
        )
        .order_by(Property.created_at.desc())
    )
    try:
        results = db.execute(stmt).scalars().all()
    except SQLAlchemyError:
        logger.exception("Search failed")
        raise HTTPException(status_code=500, detail="Search failed")
    logger.info("Search %r found %s results", data.query, len(results))
    return [_property_out(p) for p in results]


@router.post("/upload-property")
def upload_property(
    orchestrator: Annotated[IngestionOrchestrator, Depends(get_orchestrator)],
    user_id: Annotated[str | None, Form()] = None,
    title: Annotated[str, Form()] = "",
    location: Annotated[str, Form()] = "",
    price: Annotated[str | None, Form()] = None,
    description: Annotated[str, Form()] = "",
    bedrooms: Annotated[str | None, Form()] = None,
    bathrooms: Annotated[str | None, Form()] = None,
    area_sqm: Annotated[str | None, Form()] = None,
    files: Annotated[list[UploadFile] | None, File()] = None,
):
    uid = _parse_user_id(user_id)
    fields = PropertyFields(
        title=title.strip(),
        location=location.strip(),
        price=_parse_optional(price, float, "price") or 0.0,
        description=description.strip(),
        bedrooms=_parse_optional(bedrooms, int, "bedrooms"),
        bathrooms=_parse_optional(bathrooms, int, "bathrooms"),
        area_sqm=_parse_optional(area_sqm, float, "area_sqm"),
    )

    incoming: list[IncomingFile] = []
    unreadable: list[str] = []
    for f in files or []:
        name = (f.filename or "").strip() or "upload"
        try:
            raw = _read_upload(f)
        except (OSError, ValueError):
            logger.warning("Unreadable attachment %r skipped", name)
            unreadable.append(name)
            continue
        incoming.append(IncomingFile(filename=name, data=raw))

    try:
        result = orchestrator.create_property(user_id=uid, fields=fields, files=incoming)
    except UserNotFound:
        raise HTTPException(status_code=404, detail="User not found")
    except SQLAlchemyError:
        logger.exception("Failed to create property for user %s", uid)
        raise HTTPException(status_code=500, detail="Failed to create property")

    return {
        "success": True,
        "property_id": str(result.property_id),
        "media_ids": [str(m) for m in result.media_ids],
        "tokens_earned": result.tokens_earned,
        "message": result.message,
        "skipped_files": unreadable + result.skipped_files,
    }


# -----------------------
# Users / balances
# -----------------------
@router.post("/users")
def create_user(data: CreateUserIn, db: Annotated[Session, Depends(get_db)]):
    username = (data.username or "").strip()
    if not username:
        raise HTTPException(status_code=400, detail="Invalid username")
    wallet = (data.wallet_address or "").strip() or None

    exists = db.execute(select(User.id).where(User.username == username)).first()
    if exists:
        raise HTTPException(status_code=409, detail="Username already exists")

    user = User(username=username, wallet_address=wallet, token_balance=0)
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        # Concurrent registration of the same username slipped past the pre-check.
        db.rollback()
        raise HTTPException(status_code=409, detail="Username already exists")
    except SQLAlchemyError:
        logger.exception("Failed to create user %r", username)
        raise HTTPException(status_code=500, detail="Failed to create user")
    logger.info("User created: %s (%s)", user.username, user.id)
    return _user_out(user)


@router.get("/users/{user_id}/balance")
def get_user_balance(user_id: uuid.UUID, db: Annotated[Session, Depends(get_db)]):
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return _user_out(user)


@router.get("/users/{user_id}/transactions")
def get_user_transactions(user_id: uuid.UUID, db: Annotated[Session, Depends(get_db)]):
    if not db.get(User, user_id):
        raise HTTPException(status_code=404, detail="User not found")
    return [_transaction_out(t) for t in user_transactions(db, user_id)]


# -----------------------
# App factory
# -----------------------
@asynccontextmanager
async def _lifespan(app: FastAPI):
    database: Database = app.state.database
    store: MediaStore = app.state.store
    # No degraded mode: an unreachable database aborts startup.
    database.ping()
    database.create_schema()
    store.ensure_root()
    logger.info("%s %s started (uploads: %s)", SERVICE_NAME, SERVICE_VERSION, store.root)
    try:
        yield
    finally:
        database.dispose()


async def _security_headers(request: Request, call_next):
    resp = await call_next(request)
    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    resp.headers.setdefault("X-Frame-Options", "DENY")
    resp.headers.setdefault("Referrer-Policy", "no-referrer")
    return resp


def create_app(database: Database | None = None, store: MediaStore | None = None) -> FastAPI:
    app = FastAPI(title="Sultan Properti API", version=SERVICE_VERSION, lifespan=_lifespan)
    app.state.database = database or Database()
    app.state.store = store or MediaStore()

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts())
    app.middleware("http")(_security_headers)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=3600,
    )

    app.include_router(router)

    @app.get("/uploads/{path:path}", include_in_schema=False)
    def uploads_proxy(path: str):
        """
        Serve locally-stored uploads from disk; 204 when the file is missing.
        """
        rel = (path or "").lstrip("/").replace("\\", "/")
        if not rel or ".." in rel.split("/"):
            return Response(status_code=204)
        disk_path = app.state.store.disk_path(rel)
        if os.path.isfile(disk_path):
            return FileResponse(disk_path)
        return Response(status_code=204)

    web_dir = static_dir()
    if web_dir and os.path.isdir(web_dir):
        app.mount("/", StaticFiles(directory=web_dir, html=True), name="static")

    return app


app = create_app()
