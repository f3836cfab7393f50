"""In-memory snapshot of the entities a detection scope needs.

Flat collections keyed by id; relations are resolved by lookup, never by
navigating object references.
"""

from pydantic import BaseModel

from anomaly_engine.schemas.dealer import Dealer
from anomaly_engine.schemas.submission import Submission, chronological


class DetectionSnapshot(BaseModel):
    dealers: dict[int, Dealer] = {}
    submissions: tuple[Submission, ...] = ()

    model_config = {"frozen": True}

    @classmethod
    def build(cls, dealers: list[Dealer], submissions: list[Submission]) -> "DetectionSnapshot":
        return cls(
            dealers={d.id: d for d in dealers},
            submissions=tuple(chronological(submissions)),
        )

    def dealer_name(self, dealer_id: int) -> str:
        dealer = self.dealers.get(dealer_id)
        return dealer.name if dealer else f"Dealer {dealer_id}"
