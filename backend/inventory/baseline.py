"""
Synthetic baseline catalog.

Served by the sync orchestrator when the source is unreachable and the
store holds nothing for the shop, so a fresh install still renders a
meaningful dashboard. Every metric is flagged `is_sample=True` and uses
an id that can't collide with a real variant gid.
"""

from datetime import datetime

from inventory.types import SalesWindow, VariantMetric

SAMPLE_ID_PREFIX = "sample:variant:"

# (sku, product, variant title, available, unit cost, sales 30d / 60d / 90d)
_SAMPLE_CATALOG: list[tuple[str, str, str, int, float, tuple[int, int, int]]] = [
    ("TS-XL-BLK", "Tech Shell Jacket", "Black / XL", 38, 30.0, (162, 282, 369)),
    ("HB12-OLV-128", "Heritage Bottle", "Olive 12oz", 120, 8.5, (363, 618, 819)),
    ("ATH-SHORT-NV-M", "Aero Run Short", "Navy / M", 68, 15.0, (276, 468, 594)),
    ("CASE-IPH15-MT", "Magnetic Case iPhone 15", "Matte Black", 44, 12.0, (204, 354, 459)),
    ("SOCK-MER-BLK", "Merino Crew Sock", "Black / 2-pack", 150, 6.0, (342, 552, 729)),
    ("SOFA-2S-GRY", "Mod Sofa 2-seater", "Gray", 188, 100.0, (36, 68, 92)),
    ("CNDL-WHT-3PK", "Scented Candle Set", "White Tea / 3-pack", 420, 29.0, (105, 190, 270)),
    ("MAT-YOGA-SND", "Studio Yoga Mat", "Sand", 260, 36.0, (72, 126, 171)),
    ("BAG-TOTE-CRM", "Canvas Day Tote", "Cream", 344, 30.0, (123, 198, 241)),
    ("LAMP-DESK-GLD", "Brass Desk Lamp", "Gold", 140, 56.0, (33, 55, 75)),
]


def sample_metrics(now: datetime | None = None) -> list[VariantMetric]:
    """The fixed demo catalog, stamped with `now`."""
    now = now or datetime.utcnow()
    return [
        VariantMetric(
            id=f"{SAMPLE_ID_PREFIX}{index}",
            sku=sku,
            product_name=product,
            variant_title=title,
            available=available,
            unit_cost=cost,
            sales=SalesWindow(sales_30d=s30, sales_60d=s60, sales_90d=s90),
            last_calculated=now,
            is_sample=True,
        )
        for index, (sku, product, title, available, cost, (s30, s60, s90)) in enumerate(_SAMPLE_CATALOG, start=1)
    ]
