"""Per-user SipCoin balance persistence."""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from sipcoin.models.profile import UserBalance

from .models import ProfileORM
from .repository import session_scope

logger = logging.getLogger(__name__)


def get_balance(user_id: str) -> UserBalance:
    """Return the user's balance; users without a profile hold zero."""

    with session_scope() as session:
        record = session.get(ProfileORM, user_id)
        if record is None:
            return UserBalance(user_id=user_id, sipcoins_balance=0)
        return UserBalance.model_validate(record)


def credit_balance(user_id: str, points: int) -> UserBalance:
    """
    Add ``points`` to the user's balance, creating the profile when missing.

    The increment happens inside a single INSERT .. ON CONFLICT DO UPDATE so
    concurrent credits for the same user cannot overwrite each other.
    """

    if points < 0:
        raise ValueError("Balance credits must not be negative")

    statement = sqlite_insert(ProfileORM).values(user_id=user_id, sipcoins_balance=points)
    statement = statement.on_conflict_do_update(
        index_elements=[ProfileORM.user_id],
        set_={
            "sipcoins_balance": ProfileORM.sipcoins_balance + statement.excluded.sipcoins_balance,
            "updated_at": func.now(),
        },
    )
    with session_scope() as session:
        session.execute(statement)
        session.flush()
        record = session.get(ProfileORM, user_id, populate_existing=True)
        if record is None:
            raise RuntimeError(f"Profile for user={user_id} missing after credit")
        logger.debug("Credited %s point(s) to user=%s balance=%s", points, user_id, record.sipcoins_balance)
        return UserBalance.model_validate(record)


__all__ = ["credit_balance", "get_balance"]
