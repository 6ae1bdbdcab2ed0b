from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict

from store_monitor.models.schemas import ReportPayload, StoreReport
from store_monitor.services.data_processor import StoreAggregate

TWO_PLACES = Decimal("0.01")


def round_half_up(value: float) -> float:
    """Round to 2 decimals, halves away from zero (33.335 -> 33.34)"""
    return float(Decimal(repr(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def format_report(aggregates: Dict[str, StoreAggregate]) -> ReportPayload:
    stores = []
    for store_id in sorted(aggregates):
        uptime = aggregates[store_id].uptime_percentage
        # both fields are rounded from the precise value
        stores.append(StoreReport(
            store_id=store_id,
            uptime_percentage=round_half_up(uptime),
            downtime_percentage=round_half_up(100 - uptime),
        ))

    return ReportPayload(
        generated_at=datetime.now(timezone.utc),
        store_count=len(stores),
        stores=stores,
    )
