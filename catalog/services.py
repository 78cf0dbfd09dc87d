import dataclasses
import logging

import requests
from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from .exceptions import CatalogError, NotFound, StoreTimeout
from .filters import (
    DEFAULT_PAGE_SIZE,
    PAGE_SIZES,
    ProductFilter,
    apply_filters,
    clamp_page,
    compute_stats,
    paginate,
    total_pages,
)
from .models import SyncLog
from .session import EditSession
from .store import ProductStore
from .touched import DEFAULT_TTL, RecentlyTouched
from .woocommerce import WooCommerceClient

logger = logging.getLogger(__name__)

PULLED_FIELDS = (
    'title', 'price', 'promotional_price', 'external_url', 'sku', 'het_hang',
    'link_shopee', 'gia_shopee', 'link_tiktok', 'gia_tiktok', 'link_lazada', 'gia_lazada',
    'link_dmx', 'gia_dmx', 'link_tiki', 'gia_tiki',
)


def build_remote(project):
    """WooCommerce client for the project, or None when no store is configured."""
    if not (project.woocommerce_base_url or getattr(settings, 'WOOCOMMERCE_BASE_URL', '')):
        return None
    return WooCommerceClient.for_project(project)


class ProductCatalog:
    """
    Per-session state of the product list for one project.

    Holds the loaded rows, the active filter, paging, the recently touched
    ids and the single edit session. Every filter or search change sends the
    list back to page 1.
    """

    def __init__(self, project, store=None, remote=None, touched=None, actor: str = 'manual_edit'):
        self.project = project
        self.store = store or ProductStore(project)
        self.remote = remote if remote is not None else build_remote(project)
        if touched is None:
            touched = RecentlyTouched(getattr(settings, 'CATALOG_TOUCHED_TTL', DEFAULT_TTL))
        self.touched = touched
        self.editor = EditSession(self.store, remote=self.remote, touched=self.touched, actor=actor)
        self.rows = []
        self.status = None
        self.filter = ProductFilter()
        self.page = 1
        self.page_size = DEFAULT_PAGE_SIZE

    # -- loading -------------------------------------------------------------

    def load(self) -> list:
        try:
            self.rows = self.store.fetch_products()
            self.status = f"Loaded {len(self.rows)} rows."
        except StoreTimeout as exc:
            logger.warning("Loading products for %s timed out: %s", self.project.slug, exc)
            self.rows = []
            self.status = f"Loading timed out: {exc}"
        except DatabaseError as exc:
            logger.error("Loading products for %s failed: %s", self.project.slug, exc)
            self.rows = []
            self.status = f"Database error: {exc}"
        self.page = 1
        return self.rows

    def _row_index(self, product_id):
        for index, row in enumerate(self.rows):
            if str(row.get('id')) == str(product_id):
                return index
        return None

    def _replace_row(self, product_id, row: dict):
        index = self._row_index(product_id)
        if index is not None:
            self.rows[index] = row

    # -- filtering and paging ------------------------------------------------

    def set_search(self, query: str):
        self.filter = dataclasses.replace(self.filter, search=query or '')
        self.page = 1

    def set_filter(self, **changes):
        # The time window and the legacy recently-updated toggle exclude each other.
        if changes.get('time_filter'):
            changes.setdefault('recently_updated', False)
        if changes.get('recently_updated'):
            changes.setdefault('time_filter', None)
        self.filter = dataclasses.replace(self.filter, **changes)
        self.page = 1

    def clear_filters(self):
        self.filter = ProductFilter()
        self.page = 1

    def set_page_size(self, page_size: int):
        if page_size not in PAGE_SIZES:
            raise ValueError(f"page_size must be one of {PAGE_SIZES}, got {page_size!r}")
        self.page_size = page_size
        self.page = 1

    def filtered_rows(self, now=None) -> list:
        return apply_filters(self.rows, self.filter, self.touched.snapshot(), now=now)

    def go_to_page(self, page: int) -> int:
        pages = total_pages(len(self.filtered_rows()), self.page_size)
        self.page = clamp_page(page, pages)
        return self.page

    def visible_page(self, now=None):
        return paginate(self.filtered_rows(now=now), self.page, self.page_size)

    def stats(self) -> dict:
        return compute_stats(self.rows)

    # -- editing -------------------------------------------------------------

    def open_editor(self, product_id) -> EditSession:
        index = self._row_index(product_id)
        if index is None:
            raise NotFound(f"Product with ID {product_id} is not loaded.")
        if self.editor.is_open:
            self.editor.close()
        return self.editor.open(self.rows[index])

    def close_editor(self):
        self.editor.close()

    def save_editor(self):
        product_id = self.editor.working.get('id') if self.editor.working else None
        try:
            result = self.editor.save()
        except CatalogError as exc:
            self.status = str(exc)
            raise
        if result is None:
            return None

        self.status = result.message
        try:
            fresh = self.store.get_row(product_id)
        except (StoreTimeout, DatabaseError) as exc:
            logger.warning("Reloading product %s after save failed: %s", product_id, exc)
            fresh = None
        self._replace_row(product_id, fresh or result.row)
        return result

    # -- storefront pull -----------------------------------------------------

    def sync_from_remote(self, product_id) -> bool:
        """Overwrite a product's storefront-owned fields with the storefront's current values."""
        index = self._row_index(product_id)
        row = self.rows[index] if index is not None else None
        if not row or not row.get('website_id'):
            self.status = "Missing website ID or product ID for sync."
            return False
        if self.remote is None:
            self.status = "No storefront configured for this project."
            return False

        website_id = row['website_id']
        try:
            remote_row = self.remote.get_product(website_id)
        except (requests.RequestException, RuntimeError, ValueError) as exc:
            logger.warning("Fetching storefront product %s failed: %s", website_id, exc)
            self._log_pull(row, str(exc))
            self.status = f"Failed to sync product from website: {exc}"
            return False

        update = {name: remote_row.get(name) for name in PULLED_FIELDS if name in remote_row}
        update['updated_at'] = timezone.now()
        try:
            self.store.update_product(product_id, update)
        except (StoreTimeout, DatabaseError) as exc:
            logger.warning("Storing pulled product %s failed: %s", product_id, exc)
            self._log_pull(row, str(exc))
            self.status = f"Synced from website but failed to update database: {exc}"
            return False

        self._log_pull(row, '')
        self._replace_row(product_id, dict(row, **update))
        self.touched.mark(product_id)
        self.status = f'Synced product "{remote_row.get("title", "")}" from website.'
        return True

    def _log_pull(self, row: dict, error: str):
        try:
            self.store.log_sync(
                product_id=str(row.get('id')),
                website_id=str(row.get('website_id') or ''),
                title=row.get('title') or '',
                operation=SyncLog.OPERATION_SYNC,
                status=SyncLog.STATUS_FAILED if error else SyncLog.STATUS_SUCCESS,
                error=error,
            )
        except DatabaseError as exc:
            logger.warning("Could not record sync log for product %s: %s", row.get('id'), exc)
