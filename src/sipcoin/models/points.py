"""Pydantic models describing loyalty point awards."""

from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


class PointsBreakdown(BaseModel):
    """Named components of an award, kept for display and audit."""

    receipt_amount: int = Field(ge=0)
    first_visit_bonus: int = Field(default=0, ge=0)
    weekend_bonus: int = Field(default=0, ge=0)
    special_promotion: int = Field(default=0, ge=0)

    def bonus_total(self) -> int:
        return self.first_visit_bonus + self.weekend_bonus + self.special_promotion


class PointsCalculation(BaseModel):
    """Points awarded for a single receipt."""

    base_points: int
    bonus_points: int
    total_points: int
    breakdown: PointsBreakdown

    model_config = ConfigDict(frozen=True)

    def display_breakdown(self) -> Dict[str, int]:
        """Compact summary used by clients when rendering an award."""

        return {
            "base": self.breakdown.receipt_amount,
            "first_visit": self.breakdown.first_visit_bonus,
            "weekend": self.breakdown.weekend_bonus,
            "promotion": self.breakdown.special_promotion,
            "total": self.total_points,
        }
