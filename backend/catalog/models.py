# module backend.catalog.models
from decimal import Decimal
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class Category(str, Enum):
    SPARE_PARTS = "spare_parts"
    AUTOMOTIVE = "automotive"


class PackageDefinition(BaseModel):
    """Pack de crédits achetable (table 'packages'), en lecture seule pour les paiements."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    category: Category
    credits: int = Field(ge=0)
    bonus_credits: int = Field(default=0, ge=0)
    price: Decimal = Field(gt=0)
    currency: str = "AED"
    active: bool = True

    @property
    def total_credits(self) -> int:
        return self.credits + self.bonus_credits

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PackageDefinition":
        data = dict(row or {})
        data["id"] = str(data.get("id") or "")
        data["bonus_credits"] = data.get("bonus_credits") or 0
        return cls.model_validate({k: v for k, v in data.items() if k in cls.model_fields})

    def to_public(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "credits": self.credits,
            "bonusCredits": self.bonus_credits,
            "price": f"{self.price:.2f}",
            "currency": self.currency,
        }
