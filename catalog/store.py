import logging
from contextlib import contextmanager

from django.conf import settings
from django.db import OperationalError, connection, transaction

from .exceptions import StoreTimeout
from .models import Product, ProductUpdate, SyncLog

logger = logging.getLogger(__name__)

DEFAULT_ROW_LIMIT = 1000
DEFAULT_QUERY_TIMEOUT = 15  # seconds

READ_ONLY_FIELDS = {'id', 'project', 'created_at'}
UPDATABLE_FIELDS = frozenset(
    field.attname for field in Product._meta.concrete_fields if field.name not in READ_ONLY_FIELDS
)


@contextmanager
def bounded_query(timeout: float):
    """
    Run the enclosed queries under a statement timeout.

    PostgreSQL enforces the bound through ``SET LOCAL statement_timeout``;
    other backends run unbounded. A cancelled statement surfaces as StoreTimeout.
    """
    try:
        with transaction.atomic():
            if connection.vendor == 'postgresql':
                with connection.cursor() as cursor:
                    cursor.execute('SET LOCAL statement_timeout = %s', [int(timeout * 1000)])
            yield
    except OperationalError as exc:
        if 'statement timeout' in str(exc) or 'canceling statement' in str(exc):
            raise StoreTimeout(f"Query exceeded {timeout}s") from exc
        raise


class ProductStore:
    """Project-scoped access to product rows and their audit trail."""

    def __init__(self, project, row_limit: int = None, timeout: float = None):
        self.project = project
        self.row_limit = row_limit or getattr(settings, 'CATALOG_ROW_LIMIT', DEFAULT_ROW_LIMIT)
        self.timeout = timeout or getattr(settings, 'CATALOG_QUERY_TIMEOUT', DEFAULT_QUERY_TIMEOUT)

    def _products(self):
        return Product.objects.filter(project=self.project)

    def fetch_products(self) -> list:
        """Newest rows first, capped at the row limit."""
        with bounded_query(self.timeout):
            rows = list(self._products().order_by('-updated_at').values()[:self.row_limit])
        logger.info("Loaded %d products for project %s.", len(rows), self.project.slug)
        return rows

    def get_row(self, product_id):
        try:
            with bounded_query(self.timeout):
                return self._products().filter(pk=product_id).values().first()
        except (TypeError, ValueError):
            return None

    def exists(self, product_id) -> bool:
        try:
            with bounded_query(self.timeout):
                return self._products().filter(pk=product_id).exists()
        except (TypeError, ValueError):
            return False

    def update_product(self, product_id, data: dict) -> int:
        """Update one row by id; returns the number of affected rows."""
        payload = {name: value for name, value in data.items() if name in UPDATABLE_FIELDS}
        ignored = set(data) - set(payload) - READ_ONLY_FIELDS - {'project_id'}
        if ignored:
            logger.debug("Ignoring unknown product fields %s.", sorted(ignored))
        with bounded_query(self.timeout):
            return self._products().filter(pk=product_id).update(**payload)

    def insert_audit(self, entry: dict) -> ProductUpdate:
        with bounded_query(self.timeout):
            return ProductUpdate.objects.create(**entry)

    def create_products(self, rows: list) -> int:
        products = [
            Product(project=self.project, **{k: v for k, v in row.items() if k in UPDATABLE_FIELDS})
            for row in rows
        ]
        with bounded_query(self.timeout):
            created = Product.objects.bulk_create(products)
        return len(created)

    def website_ids(self) -> set:
        with bounded_query(self.timeout):
            values = self._products().exclude(website_id='').values_list('website_id', flat=True)
            return {str(value) for value in values}

    def log_sync(self, **fields):
        return SyncLog.objects.create(**fields)
