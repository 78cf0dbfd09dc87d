from datetime import datetime, timedelta, timezone

import pytest

from catalog.filters import (
    PAGE_SIZES,
    ProductFilter,
    apply_filters,
    compute_stats,
    paginate,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def days_ago(days):
    return NOW - timedelta(days=days)


ROWS = [
    {
        'id': 1, 'title': 'Nồi cơm điện', 'sku': 'sku123-red', 'website_id': 501,
        'link_shopee': 'https://shopee.vn/noi', 'gia_shopee': 100,
        'het_hang': False, 'image_url': 'https://cdn/1.jpg', 'updated_at': days_ago(0.5),
    },
    {
        'id': 2, 'title': 'Quạt đứng', 'sku': 'FAN-2', 'website_id': 502,
        'link_tiktok': 'https://tiktok.com/quat',
        'het_hang': 'Hết hàng', 'image_url': '', 'updated_at': days_ago(5),
    },
    {
        'id': 3, 'title': 'Bàn ủi', 'sku': 'IRON-3', 'website_id': 503,
        'link_lazada': 'lzd', 'gia_lazada': 70,
        'het_hang': None, 'updated_at': days_ago(20),
    },
    {
        'id': 4, 'title': 'Máy xay', 'sku': 'BLEND-4', 'website_id': 504,
        'het_hang': 0, 'image_url': 'https://cdn/4.jpg', 'updated_at': days_ago(45),
    },
    {
        'id': 5, 'title': 'Ấm siêu tốc', 'sku': 'KETTLE-5', 'website_id': 505,
        'het_hang': 1, 'updated_at': None,
    },
]


def ids(rows):
    return [row['id'] for row in rows]


def run(product_filter, touched=frozenset()):
    return ids(apply_filters(ROWS, product_filter, touched=touched, now=NOW))


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

class TestSearch:
    def test_sku_match_is_case_insensitive(self):
        assert run(ProductFilter(search='SKU123')) == [1]

    def test_blank_query_is_a_no_op(self):
        assert run(ProductFilter(search='   ')) == [1, 2, 3, 4, 5]

    def test_matches_website_id(self):
        assert run(ProductFilter(search='503')) == [3]

    def test_matches_platform_links(self):
        assert run(ProductFilter(search='TIKTOK.COM')) == [2]

    def test_matches_title_with_diacritics(self):
        assert run(ProductFilter(search='quạt')) == [2]

    def test_no_match_is_empty_not_error(self):
        assert run(ProductFilter(search='nothing-like-this')) == []


# ---------------------------------------------------------------------------
# Platform, stock and sync filters
# ---------------------------------------------------------------------------

def test_platform_filter_only_needs_non_empty_link():
    assert run(ProductFilter(platform='lazada')) == [3]


def test_unknown_platform_is_ignored():
    assert run(ProductFilter(platform='amazon')) == [1, 2, 3, 4, 5]


class TestStockFilter:
    def test_instock_keeps_unknown_rows(self):
        assert run(ProductFilter(stock_status='instock')) == [1, 3, 4]

    def test_outofstock(self):
        assert run(ProductFilter(stock_status='outofstock')) == [2, 5]


class TestSyncFilter:
    def test_synced(self):
        assert run(ProductFilter(sync_status='synced')) == [1]

    def test_partial(self):
        assert run(ProductFilter(sync_status='partial')) == [2]

    def test_unsynced_includes_short_links(self):
        assert run(ProductFilter(sync_status='unsynced')) == [3, 4, 5]

    def test_missing_images(self):
        assert run(ProductFilter(sync_status='missing_images')) == [2, 3, 5]


# ---------------------------------------------------------------------------
# Time filters
# ---------------------------------------------------------------------------

class TestTimeFilter:
    def test_recent_7_days(self):
        assert run(ProductFilter(time_filter='recent-7d')) == [1, 2]

    def test_recent_30_days(self):
        assert run(ProductFilter(time_filter='recent-30d')) == [1, 2, 3]

    def test_no_updates(self):
        assert run(ProductFilter(time_filter='no-updates')) == [4, 5]

    def test_touched_rows_count_as_recent(self):
        assert run(ProductFilter(time_filter='recent-7d'), touched={'4'}) == [1, 2, 4]

    def test_touched_rows_are_never_without_updates(self):
        assert run(ProductFilter(time_filter='no-updates'), touched={4}) == [5]

    def test_legacy_recently_updated_toggle(self):
        assert run(ProductFilter(recently_updated=True)) == [1]
        assert run(ProductFilter(recently_updated=True), touched={'5'}) == [1, 5]

    def test_iso_timestamps_are_parsed(self):
        rows = [{'id': 9, 'updated_at': days_ago(2).isoformat()}, {'id': 10, 'updated_at': 'garbage'}]
        result = apply_filters(rows, ProductFilter(time_filter='recent-7d'), now=NOW)
        assert ids(result) == [9]


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------

def test_filters_compose_in_order_without_reordering():
    product_filter = ProductFilter(search='-', stock_status='instock', time_filter='recent-30d')
    assert run(product_filter) == [1, 3]


def test_filtering_is_idempotent():
    product_filter = ProductFilter(search='o', stock_status='instock', sync_status='unsynced')
    once = apply_filters(ROWS, product_filter, now=NOW)
    twice = apply_filters(once, product_filter, now=NOW)
    assert once == twice


def test_input_rows_are_not_mutated():
    before = [dict(row) for row in ROWS]
    apply_filters(ROWS, ProductFilter(search='x', platform='shopee'), now=NOW)
    assert ROWS == before


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

class TestPaginate:
    rows = [{'id': n} for n in range(1, 26)]

    def test_total_pages_rounds_up(self):
        page = paginate(self.rows, page=1, page_size=10)
        assert page.total_pages == 3
        assert page.total_count == 25
        assert ids(page.rows) == list(range(1, 11))

    def test_last_page_is_partial(self):
        assert ids(paginate(self.rows, page=3, page_size=10).rows) == [21, 22, 23, 24, 25]

    @pytest.mark.parametrize('requested, expected', [(0, 1), (-4, 1), (99, 3)])
    def test_page_is_clamped(self, requested, expected):
        assert paginate(self.rows, page=requested, page_size=10).page == expected

    def test_empty_collection(self):
        page = paginate([], page=1, page_size=20)
        assert page.total_pages == 0
        assert page.rows == []
        assert page.page == 1

    def test_rejects_unknown_page_size(self):
        assert 15 not in PAGE_SIZES
        with pytest.raises(ValueError):
            paginate(self.rows, page=1, page_size=15)


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

def test_stats_cover_whole_collection():
    stats = compute_stats(ROWS)
    assert stats['total'] == 5
    assert stats['platforms'] == {'shopee': 1, 'tiktok': 1, 'lazada': 1, 'dmx': 0, 'tiki': 0}
    assert stats['outofstock'] == 2
    assert stats['instock'] == 3
