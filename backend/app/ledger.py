from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.models import MediaUpload, TokenTransaction, User


logger = logging.getLogger(__name__)

UPLOAD_REWARD = "upload_reward"


class LedgerError(Exception):
    pass


def award_tokens(db: Session, *, user_id: uuid.UUID, media_id: uuid.UUID, amount: int) -> int:
    """
    Credit `amount` to the user and append the paired ledger row.

    Both writes go through the caller's transaction, so they commit or roll
    back together. A media item already rewarded is not credited again (the
    unique constraint on token_transactions.media_id backs this up under
    concurrency). Returns the amount actually credited.
    """
    if int(amount) <= 0:
        raise ValueError("amount must be positive")

    already = db.execute(select(TokenTransaction.id).where(TokenTransaction.media_id == media_id)).first()
    if already:
        logger.info("Media %s already rewarded; skipping", media_id)
        return 0

    res = db.execute(
        update(User)
        .where(User.id == user_id)
        .values(token_balance=User.token_balance + int(amount))
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise LedgerError(f"User {user_id} not found")

    db.add(
        TokenTransaction(
            user_id=user_id,
            media_id=media_id,
            amount=int(amount),
            transaction_type=UPLOAD_REWARD,
        )
    )
    db.flush()
    return int(amount)


def user_transactions(db: Session, user_id: uuid.UUID) -> list[TokenTransaction]:
    stmt = (
        select(TokenTransaction)
        .where(TokenTransaction.user_id == user_id)
        .order_by(TokenTransaction.created_at.desc())
    )
    return list(db.execute(stmt).scalars().all())


@dataclass
class AuditReport:
    users_checked: int = 0
    violations: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations


def audit_ledger(db: Session) -> AuditReport:
    """
    Check the ledger invariants across the whole database:
    - every balance equals the sum of that user's ledger amounts
    - at most one original media row per fingerprint
    - at most one reward per media row
    - non-original media carry no tokens
    """
    report = AuditReport()

    totals = (
        select(TokenTransaction.user_id, func.coalesce(func.sum(TokenTransaction.amount), 0).label("total"))
        .group_by(TokenTransaction.user_id)
        .subquery()
    )
    rows = db.execute(
        select(User.id, User.username, User.token_balance, func.coalesce(totals.c.total, 0))
        .outerjoin(totals, totals.c.user_id == User.id)
    ).all()
    for user_id, username, balance, total in rows:
        report.users_checked += 1
        if int(balance or 0) != int(total or 0):
            report.violations.append(f"user {username} ({user_id}): balance {balance} != ledger total {total}")

    dup_originals = db.execute(
        select(MediaUpload.content_hash, func.count(MediaUpload.id))
        .where(MediaUpload.is_original.is_(True))
        .group_by(MediaUpload.content_hash)
        .having(func.count(MediaUpload.id) > 1)
    ).all()
    for content_hash, n in dup_originals:
        report.violations.append(f"fingerprint {content_hash}: {n} original media rows")

    double_rewards = db.execute(
        select(TokenTransaction.media_id, func.count(TokenTransaction.id))
        .where(TokenTransaction.media_id.is_not(None))
        .group_by(TokenTransaction.media_id)
        .having(func.count(TokenTransaction.id) > 1)
    ).all()
    for media_id, n in double_rewards:
        report.violations.append(f"media {media_id}: rewarded {n} times")

    paid_duplicates = db.execute(
        select(MediaUpload.id).where(MediaUpload.is_original.is_(False), MediaUpload.tokens_earned != 0)
    ).scalars().all()
    for media_id in paid_duplicates:
        report.violations.append(f"media {media_id}: duplicate carries tokens")

    return report
