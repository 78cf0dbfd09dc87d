import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

PLATFORMS = ('shopee', 'tiktok', 'lazada', 'dmx', 'tiki')

PLATFORM_LABELS = {
    'shopee': 'Shopee',
    'tiktok': 'TikTok',
    'lazada': 'Lazada',
    'dmx': 'Điện máy xanh',
    'tiki': 'Tiki',
}

SYNC_LINK_MIN_LENGTH = 10

OUT_OF_STOCK_VALUES = ('true', 'Hết hàng', 'hết hàng')
IN_STOCK_VALUES = ('false', 'Còn hàng', 'còn hàng')


class StockState(Enum):
    OUT_OF_STOCK = 'outofstock'
    IN_STOCK = 'instock'
    UNKNOWN = 'unknown'


class SyncStatus(Enum):
    UNSYNCED = 'unsynced'
    PARTIAL_SYNC = 'partial'
    FULL_SYNC = 'synced'


@dataclass(frozen=True)
class PlatformSummary:
    valid_count: int
    price_count: int
    link_mismatch: bool


@dataclass(frozen=True)
class CanonicalPricing:
    regular_price: float
    promotional_price: float
    external_url: str
    lowest_platform: str
    highest_platform: str


@dataclass
class AutoUpdateResult:
    row: dict
    was_updated: bool
    summary: str


def link_field(platform: str) -> str:
    return f'link_{platform}'


def price_field(platform: str) -> str:
    return f'gia_{platform}'


def platform_of_field(name: str) -> Optional[str]:
    """Return the platform a ``link_*``/``gia_*`` column belongs to, else None."""
    for prefix in ('link_', 'gia_'):
        if name.startswith(prefix) and name[len(prefix):] in PLATFORMS:
            return name[len(prefix):]
    return None


def _price(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def is_sync_valid_link(link) -> bool:
    """A link counts towards sync health only when it is longer than a placeholder."""
    return isinstance(link, str) and len(link) > SYNC_LINK_MIN_LENGTH


def is_pricing_valid_link(link) -> bool:
    # Looser than is_sync_valid_link: any non-empty link may supply a price.
    return isinstance(link, str) and link != ''


def platform_entries(row: dict):
    """Yield (platform, link, price) in the fixed platform order."""
    for platform in PLATFORMS:
        yield platform, row.get(link_field(platform)) or '', _price(row.get(price_field(platform)))


def derive_platform_summary(row: dict) -> PlatformSummary:
    valid_count = price_count = 0
    link_mismatch = False
    for _, link, price in platform_entries(row):
        linked = is_sync_valid_link(link)
        priced = price > 0
        if linked:
            valid_count += 1
            if not priced:
                link_mismatch = True
        if priced:
            price_count += 1
    return PlatformSummary(valid_count, price_count, link_mismatch)


def derive_sync_status(summary: PlatformSummary) -> SyncStatus:
    if summary.valid_count == 0:
        return SyncStatus.UNSYNCED
    if summary.link_mismatch or summary.valid_count != summary.price_count:
        return SyncStatus.PARTIAL_SYNC
    return SyncStatus.FULL_SYNC


def sync_status_of(row: dict) -> SyncStatus:
    return derive_sync_status(derive_platform_summary(row))


def _pricing_candidates(row: dict) -> list:
    return [
        (platform, link, price)
        for platform, link, price in platform_entries(row)
        if price > 0 and is_pricing_valid_link(link)
    ]


def find_lowest_platform(row: dict) -> Optional[tuple]:
    """
    Return (platform, link, price) of the cheapest linked and priced platform.

    Ties go to the platform that comes last in PLATFORMS, unlike
    derive_canonical_pricing which keeps the first.
    """
    candidates = _pricing_candidates(row)
    if not candidates:
        return None
    lowest = candidates[0]
    for candidate in candidates[1:]:
        if candidate[2] <= lowest[2]:
            lowest = candidate
    return lowest


def derive_canonical_pricing(row: dict) -> Optional[CanonicalPricing]:
    """
    Suggest canonical prices from the platform entries of a product.

    Regular price is the highest platform price, promotional price the lowest,
    and the external URL points at the cheapest platform. Ties keep the
    platform that comes first in PLATFORMS. Returns None when no platform is
    both linked and priced.
    """
    candidates = _pricing_candidates(row)
    if not candidates:
        return None

    highest = lowest = candidates[0]
    for candidate in candidates[1:]:
        if candidate[2] > highest[2]:
            highest = candidate
        if candidate[2] < lowest[2]:
            lowest = candidate

    return CanonicalPricing(
        regular_price=highest[2],
        promotional_price=lowest[2],
        external_url=lowest[1],
        lowest_platform=lowest[0],
        highest_platform=highest[0],
    )


def normalize_stock_state(raw) -> StockState:
    """
    Map the raw ``het_hang`` column onto a StockState.

    The column arrives as a bool, 0/1 or a localized label. Comparison is
    exact-case against the known labels; anything else is UNKNOWN.
    """
    if isinstance(raw, bool):
        return StockState.OUT_OF_STOCK if raw else StockState.IN_STOCK
    if isinstance(raw, (int, float)):
        if raw == 1:
            return StockState.OUT_OF_STOCK
        if raw == 0:
            return StockState.IN_STOCK
        return StockState.UNKNOWN
    if isinstance(raw, str):
        if raw in OUT_OF_STOCK_VALUES:
            return StockState.OUT_OF_STOCK
        if raw in IN_STOCK_VALUES:
            return StockState.IN_STOCK
    return StockState.UNKNOWN


def should_auto_update_price(row: dict) -> bool:
    return _price(row.get('price')) == 0


def apply_auto_update_if_needed(row: dict) -> AutoUpdateResult:
    """Fill in price, promotional price and external URL when the price is unset."""
    if not should_auto_update_price(row):
        return AutoUpdateResult(row, False, 'Không cần cập nhật - đã có giá thường')

    pricing = derive_canonical_pricing(row)
    if pricing is None:
        return AutoUpdateResult(row, False, 'Không có giá từ brands để cập nhật')

    updated = dict(row)
    updated['price'] = pricing.regular_price
    updated['promotional_price'] = pricing.promotional_price
    updated['external_url'] = pricing.external_url or row.get('external_url')

    lines = [
        f'✅ Giá thường: {format_price_text(pricing.regular_price)}₫ (từ {pricing.highest_platform})',
        f'✅ Giá KM: {format_price_text(pricing.promotional_price)}₫ (từ {pricing.lowest_platform})',
    ]
    if pricing.external_url:
        lines.append(f'✅ URL: từ {pricing.lowest_platform}')
    return AutoUpdateResult(updated, True, '\n'.join(lines))


def batch_auto_update(rows: list) -> tuple:
    """Apply the auto update to every row; returns (rows, update_count, summary)."""
    updated_rows = []
    summaries = []
    for index, row in enumerate(rows, start=1):
        result = apply_auto_update_if_needed(row)
        if result.was_updated:
            summaries.append(f'Sản phẩm {index}: {result.summary}')
        updated_rows.append(result.row)

    summary = '\n\n'.join(summaries) if summaries else 'Không có sản phẩm nào cần cập nhật'
    return updated_rows, len(summaries), summary


_PRICE_NOISE = re.compile(r'[₫$€£¥\s,.]')


def parse_price_text(value) -> float:
    """Parse storefront price text like ``"495.000₫"`` or ``"495,000"``; garbage yields 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if not value or not isinstance(value, str):
        return 0.0

    cleaned = _PRICE_NOISE.sub('', value)
    try:
        return float(cleaned)
    except ValueError:
        logger.debug("Unparseable price text %r – treating as 0.", value)
        return 0.0


def format_price_text(price) -> str:
    """Format a price with dots as thousand separators (``495000`` -> ``"495.000"``)."""
    amount = _price(price)
    if not amount:
        return '0'
    return f'{round(amount):,}'.replace(',', '.')
