"""Deal detection output — deals, per-user alerts and analysis insights."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from tripmerge.schemas.common import AlertUrgency, DealRarity, DealSeverity, DealType, ServiceType

AlertType = Literal["price_drop", "threshold_reached", "new_deal", "expiring_soon"]


class DealSavings(BaseModel):
    amount: float
    percentage: float


class Deal(BaseModel):
    id: str
    service_type: ServiceType
    provider: str
    offer_id: str
    route: str
    deal_type: DealType
    severity: DealSeverity
    title: str
    description: str
    original_price: float
    current_price: float
    savings: DealSavings
    valid_until: datetime | None = None
    conditions: list[str] = []
    confidence: float  # 0-100
    rarity: DealRarity
    metadata: dict[str, bool] = {}


class DealAlert(BaseModel):
    user_id: str | None = None
    deal_id: str
    alert_type: AlertType
    message: str
    urgency: AlertUrgency
    created_at: datetime
    expires_at: datetime | None = None
    acknowledged: bool = False


class DealInsights(BaseModel):
    total_deals_found: int = 0
    best_deal: Deal | None = None
    average_savings: float = 0.0
    rare_deals_count: int = 0
    recommended_actions: list[str] = []


class DealAnalysis(BaseModel):
    deals: list[Deal] = []
    alerts: list[DealAlert] = []
    insights: DealInsights = DealInsights()
