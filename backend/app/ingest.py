from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.config import max_upload_bytes, original_upload_tokens
from app.db import Database
from app.ledger import LedgerError, award_tokens
from app.media import content_sha256_hex, guess_content_type, has_original, is_duplicate, media_kind
from app.models import MediaUpload, Property, User
from app.storage import MediaStore, StorageError, StoredFile


logger = logging.getLogger(__name__)


class UserNotFound(Exception):
    pass


class RejectedUpload(Exception):
    """The attachment is unusable (empty, oversized); skip it."""


@dataclass(frozen=True)
class PropertyFields:
    title: str = ""
    location: str = ""
    price: float = 0.0
    description: str = ""
    bedrooms: int | None = None
    bathrooms: int | None = None
    area_sqm: float | None = None


@dataclass(frozen=True)
class IncomingFile:
    filename: str
    data: bytes


@dataclass(frozen=True)
class FileOutcome:
    media_id: uuid.UUID
    content_hash: str
    is_original: bool
    tokens_earned: int


@dataclass
class IngestResult:
    property_id: uuid.UUID
    media_ids: list[uuid.UUID] = field(default_factory=list)
    tokens_earned: int = 0
    skipped_files: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Property created! Earned {self.tokens_earned} tokens"


class IngestionOrchestrator:
    """
    Creates a listing and runs each attachment through
    hash -> dedup check -> store -> record (+ reward when original).

    Every file is its own unit of work: a failing file is skipped and never
    undoes the property row or the files processed before it.
    """

    def __init__(
        self,
        database: Database,
        store: MediaStore,
        *,
        reward: int | None = None,
        max_bytes: int | None = None,
    ) -> None:
        self.database = database
        self.store = store
        self.reward = int(reward if reward is not None else original_upload_tokens())
        self.max_bytes = int(max_bytes if max_bytes is not None else max_upload_bytes())

    def create_property(self, *, user_id: uuid.UUID, fields: PropertyFields, files: list[IncomingFile]) -> IngestResult:
        property_id = self._insert_property(user_id, fields)
        result = IngestResult(property_id=property_id)

        digests: list[str] = []
        for upload in files:
            try:
                outcome = self.ingest_file(property_id=property_id, user_id=user_id, upload=upload)
            except RejectedUpload as e:
                logger.warning("Skipping upload %r for property %s: %s", upload.filename, property_id, e)
                result.skipped_files.append(upload.filename)
                continue
            except (StorageError, SQLAlchemyError, LedgerError):
                logger.exception("Failed to ingest %r for property %s", upload.filename, property_id)
                result.skipped_files.append(upload.filename)
                continue
            result.media_ids.append(outcome.media_id)
            result.tokens_earned += outcome.tokens_earned
            digests.append(outcome.content_hash)

        if digests:
            self._set_aggregate_hash(property_id, digests)

        logger.info("Property uploaded: %s - %s tokens earned", property_id, result.tokens_earned)
        return result

    def _insert_property(self, user_id: uuid.UUID, fields: PropertyFields) -> uuid.UUID:
        with self.database.session_scope() as db:
            if db.get(User, user_id) is None:
                raise UserNotFound(str(user_id))
            p = Property(
                user_id=user_id,
                title=fields.title,
                location=fields.location,
                price=float(fields.price),
                description=fields.description,
                bedrooms=fields.bedrooms,
                bathrooms=fields.bathrooms,
                area_sqm=fields.area_sqm,
            )
            db.add(p)
            db.flush()
            return p.id

    def _set_aggregate_hash(self, property_id: uuid.UUID, digests: list[str]) -> None:
        aggregate = hashlib.sha256("\n".join(digests).encode("ascii")).hexdigest()
        try:
            with self.database.session_scope() as db:
                p = db.get(Property, property_id)
                if p is not None:
                    p.content_hash = aggregate
        except SQLAlchemyError:
            logger.exception("Failed to record content hash for property %s", property_id)

    def ingest_file(self, *, property_id: uuid.UUID, user_id: uuid.UUID, upload: IncomingFile) -> FileOutcome:
        data = upload.data
        if not data:
            raise RejectedUpload("empty upload")
        if len(data) > self.max_bytes:
            raise RejectedUpload(f"upload too large (max {self.max_bytes} bytes)")

        digest = content_sha256_hex(data)
        with self.database.session_scope() as db:
            duplicate = is_duplicate(db, digest)

        kind = media_kind(upload.filename)
        content_type = guess_content_type(upload.filename, kind)
        stored = self.store.save(filename=upload.filename, data=data, kind=kind, content_type=content_type)

        record = dict(
            property_id=property_id,
            user_id=user_id,
            stored=stored,
            digest=digest,
            filename=upload.filename,
            content_type=content_type,
            size=len(data),
        )
        try:
            try:
                return self._record(is_original=not duplicate, **record)
            except IntegrityError:
                if duplicate:
                    raise
                # Lost the race to a concurrent original with the same bytes.
                with self.database.session_scope() as db:
                    taken = has_original(db, digest)
                if not taken:
                    raise
                logger.warning("Concurrent original for %s; recording %r as duplicate", digest, upload.filename)
                return self._record(is_original=False, **record)
        except Exception:
            self.store.remove(stored)
            raise

    def _record(
        self,
        *,
        property_id: uuid.UUID,
        user_id: uuid.UUID,
        stored: StoredFile,
        digest: str,
        filename: str,
        content_type: str,
        size: int,
        is_original: bool,
    ) -> FileOutcome:
        with self.database.session_scope() as db:
            media = MediaUpload(
                property_id=property_id,
                user_id=user_id,
                file_path=stored.file_path,
                file_type=stored.kind,
                content_hash=digest,
                file_size=size,
                is_original=is_original,
                tokens_earned=0,
                original_filename=filename,
                content_type=content_type,
            )
            db.add(media)
            db.flush()
            tokens = 0
            if is_original:
                tokens = award_tokens(db, user_id=user_id, media_id=media.id, amount=self.reward)
                media.tokens_earned = tokens
            return FileOutcome(media_id=media.id, content_hash=digest, is_original=is_original, tokens_earned=tokens)
