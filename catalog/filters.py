import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Optional

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from .pricing import PLATFORMS, StockState, SyncStatus, link_field, normalize_stock_state, sync_status_of

logger = logging.getLogger(__name__)

PAGE_SIZES = (10, 20, 50, 100)
DEFAULT_PAGE_SIZE = 10

SEARCH_FIELDS = ('title', 'sku') + tuple(link_field(p) for p in PLATFORMS)

STOCK_FILTERS = {
    'instock': lambda state: state is not StockState.OUT_OF_STOCK,
    'outofstock': lambda state: state is StockState.OUT_OF_STOCK,
}

SYNC_FILTERS = {status.value: status for status in SyncStatus}
MISSING_IMAGES = 'missing_images'

TIME_FILTER_DAYS = {'recent-7d': 7, 'recent-30d': 30}
NO_UPDATES = 'no-updates'
NO_UPDATES_DAYS = 30
RECENTLY_UPDATED_DAYS = 1


@dataclass(frozen=True)
class ProductFilter:
    search: str = ''
    platform: Optional[str] = None
    stock_status: Optional[str] = None
    sync_status: Optional[str] = None
    time_filter: Optional[str] = None
    recently_updated: bool = False


@dataclass(frozen=True)
class Page:
    rows: list
    page: int
    page_size: int
    total_pages: int
    total_count: int


def _as_datetime(value) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = parse_datetime(str(value))
        if parsed is None:
            logger.debug("Unparseable updated_at %r – treating as missing.", value)
            return None
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


def matches_search(row: dict, query: str) -> bool:
    """Case-insensitive substring match over title, sku, website id and links."""
    for name in SEARCH_FIELDS:
        value = row.get(name)
        if value and query in str(value).lower():
            return True
    website_id = row.get('website_id')
    return website_id is not None and query in str(website_id).lower()


def _updated_within(row: dict, now: datetime, days: int) -> bool:
    updated_at = _as_datetime(row.get('updated_at'))
    return updated_at is not None and updated_at > now - timedelta(days=days)


def _time_predicate(time_filter: str, touched, now: datetime):
    if time_filter in TIME_FILTER_DAYS:
        days = TIME_FILTER_DAYS[time_filter]
        return lambda row: str(row.get('id')) in touched or _updated_within(row, now, days)
    if time_filter == NO_UPDATES:
        def no_updates(row):
            if str(row.get('id')) in touched:
                return False
            updated_at = _as_datetime(row.get('updated_at'))
            return updated_at is None or updated_at < now - timedelta(days=NO_UPDATES_DAYS)
        return no_updates
    logger.warning("Unknown time filter %r – ignoring.", time_filter)
    return None


def apply_filters(rows, product_filter: ProductFilter, touched=frozenset(), now: Optional[datetime] = None) -> list:
    """
    Narrow ``rows`` by the active filters, preserving their order.

    Steps run in a fixed order: search, platform, stock, sync status, time
    window, then the legacy recently-updated toggle. Ids in ``touched`` count
    as freshly updated regardless of their ``updated_at``.
    """
    now = now or timezone.now()
    touched = {str(product_id) for product_id in touched}
    result = list(rows)

    query = (product_filter.search or '').strip().lower()
    if query:
        result = [row for row in result if matches_search(row, query)]

    if product_filter.platform:
        if product_filter.platform in PLATFORMS:
            name = link_field(product_filter.platform)
            result = [row for row in result if row.get(name)]
        else:
            logger.warning("Unknown platform filter %r – ignoring.", product_filter.platform)

    if product_filter.stock_status:
        keep = STOCK_FILTERS.get(product_filter.stock_status)
        if keep is None:
            logger.warning("Unknown stock filter %r – ignoring.", product_filter.stock_status)
        else:
            result = [row for row in result if keep(normalize_stock_state(row.get('het_hang')))]

    if product_filter.sync_status:
        if product_filter.sync_status == MISSING_IMAGES:
            result = [row for row in result if not row.get('image_url')]
        elif product_filter.sync_status in SYNC_FILTERS:
            wanted = SYNC_FILTERS[product_filter.sync_status]
            result = [row for row in result if sync_status_of(row) is wanted]
        else:
            logger.warning("Unknown sync filter %r – ignoring.", product_filter.sync_status)

    if product_filter.time_filter:
        predicate = _time_predicate(product_filter.time_filter, touched, now)
        if predicate is not None:
            result = [row for row in result if predicate(row)]

    if product_filter.recently_updated:
        result = [
            row for row in result
            if str(row.get('id')) in touched or _updated_within(row, now, RECENTLY_UPDATED_DAYS)
        ]

    return result


def total_pages(count: int, page_size: int) -> int:
    return math.ceil(count / page_size)


def clamp_page(page: int, pages: int) -> int:
    return max(1, min(page, max(pages, 1)))


def paginate(rows: list, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Page:
    if page_size not in PAGE_SIZES:
        raise ValueError(f"page_size must be one of {PAGE_SIZES}, got {page_size!r}")

    pages = total_pages(len(rows), page_size)
    page = clamp_page(page, pages)
    start = (page - 1) * page_size
    return Page(
        rows=rows[start:start + page_size],
        page=page,
        page_size=page_size,
        total_pages=pages,
        total_count=len(rows),
    )


def compute_stats(rows) -> dict:
    """Counters over the whole collection, independent of any active filter."""
    stats = {
        'platforms': {platform: 0 for platform in PLATFORMS},
        'instock': 0,
        'outofstock': 0,
        'total': 0,
    }
    for row in rows:
        stats['total'] += 1
        for platform in PLATFORMS:
            if row.get(link_field(platform)):
                stats['platforms'][platform] += 1
        if normalize_stock_state(row.get('het_hang')) is StockState.OUT_OF_STOCK:
            stats['outofstock'] += 1
        else:
            stats['instock'] += 1
    return stats
