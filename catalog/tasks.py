import logging

import requests
from celery import shared_task
from django.db import DatabaseError
from django.utils import timezone

from .exceptions import StoreTimeout
from .models import Project
from .pricing import apply_auto_update_if_needed
from .store import ProductStore
from .woocommerce import WooCommerceClient, map_payload_to_row

logger = logging.getLogger(__name__)

IMPORT_BATCH_SIZE = 50


@shared_task(bind=True, name='catalog.import_missing_products')
def import_missing_products_task(self, project_id):
    """
    Import storefront products that are missing from the local store.

    Steps:
      1. Collect the website ids already present for the project.
      2. Page through the WooCommerce catalogue.
      3. Map every unknown product onto local columns.
      4. Insert them in batches; a failed batch is counted and skipped.
    """
    project = Project.objects.active().get(pk=project_id)
    store = ProductStore(project)
    client = WooCommerceClient.for_project(project)
    logger.info("Starting storefront import for project %s.", project.slug)

    known = store.website_ids()
    seen = created = errors = 0
    pending = []

    def flush():
        nonlocal created, errors
        if not pending:
            return
        try:
            created += store.create_products(pending)
        except (StoreTimeout, DatabaseError) as exc:
            errors += len(pending)
            logger.error("Failed to import batch of %d products: %s", len(pending), exc)
        pending.clear()

    try:
        for raw in client.iter_products():
            seen += 1
            try:
                row = map_payload_to_row(raw)
            except (KeyError, TypeError, ValueError) as exc:
                errors += 1
                logger.error("Skipping malformed storefront product %r: %s", raw.get('id'), exc)
                continue

            if row['website_id'] in known:
                continue
            known.add(row['website_id'])
            pending.append(row)
            if len(pending) >= IMPORT_BATCH_SIZE:
                flush()
    except (requests.RequestException, RuntimeError) as exc:
        errors += 1
        logger.error("Storefront listing for project %s aborted: %s", project.slug, exc)

    flush()
    logger.info(
        "Import complete. seen=%d, created=%d, errors=%d.",
        seen, created, errors,
    )
    return {'seen': seen, 'created': created, 'errors': errors}


@shared_task(bind=True, name='catalog.apply_auto_prices')
def apply_auto_prices_task(self, project_id):
    """Derive prices from platform data for every product whose price is unset."""
    project = Project.objects.active().get(pk=project_id)
    store = ProductStore(project)
    updated = skipped = errors = 0

    for row in store.fetch_products():
        result = apply_auto_update_if_needed(row)
        if not result.was_updated:
            skipped += 1
            continue

        try:
            store.update_product(row['id'], {
                'price': result.row['price'],
                'promotional_price': result.row['promotional_price'],
                'external_url': result.row['external_url'],
                'updated_at': timezone.now(),
            })
            updated += 1
            logger.debug("Product %s priced from platforms.", row['id'])
        except (StoreTimeout, DatabaseError) as exc:
            errors += 1
            logger.error("Failed to update price of product %s: %s", row['id'], exc)

    logger.info(
        "Auto pricing complete. updated=%d, skipped=%d, errors=%d.",
        updated, skipped, errors,
    )
    return {'updated': updated, 'skipped': skipped, 'errors': errors}
