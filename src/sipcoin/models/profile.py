"""Pydantic models for per-user loyalty balances."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class UserBalance(BaseModel):
    """SipCoin balance held by a user."""

    user_id: str
    sipcoins_balance: int = Field(default=0, ge=0)

    model_config = ConfigDict(from_attributes=True)
