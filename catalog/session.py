import copy
import logging
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Optional

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from .exceptions import (
    AuditWriteFailed,
    LocalWriteFailed,
    NotFound,
    RemoteWriteFailed,
    StoreTimeout,
    ValidationError,
)
from .models import SyncLog
from .pricing import (
    PLATFORM_LABELS,
    PLATFORMS,
    apply_auto_update_if_needed,
    find_lowest_platform,
    format_price_text,
    link_field,
    platform_of_field,
    price_field,
)

logger = logging.getLogger(__name__)

AUTO_SUMMARY_TTL = 10.0  # seconds
SERVER_MANAGED_FIELDS = ('id', 'created_at')

CLOSED = 'closed'
OPEN = 'open'
SAVING = 'saving'


@dataclass
class SaveResult:
    row: dict
    message: str
    remote_synced: bool = False
    warnings: list = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.warnings)


def _int_id(product_id) -> Optional[int]:
    text = str(product_id)
    return int(text) if text.isdigit() else None


class EditSession:
    """
    Edit one product and propagate the result.

    A session snapshots the row on ``open`` and works on a deep copy. Saving
    writes the local store first; the audit entry and the storefront update
    only follow a successful local write and never undo it.
    """

    def __init__(self, store, remote=None, touched=None, actor: str = 'manual_edit', source: str = 'ui',
                 audit_enabled: bool = None, clock=time.monotonic):
        self.store = store
        self.remote = remote
        self.touched = touched
        self.actor = actor
        self.source = source
        if audit_enabled is None:
            audit_enabled = getattr(settings, 'CATALOG_AUDIT_ENABLED', True)
        self.audit_enabled = audit_enabled
        self._clock = clock
        self._save_lock = Lock()
        self.state = CLOSED
        self.original = None
        self.working = None
        self._summary = ''
        self._summary_deadline = 0.0

    # -- lifecycle -----------------------------------------------------------

    def open(self, row: dict) -> 'EditSession':
        if self.state == SAVING:
            raise ValidationError("Cannot open a product while a save is in flight.")
        self.original = copy.deepcopy(row)
        self.working = copy.deepcopy(row)
        self.state = OPEN

        summaries = []
        unset_price_summary = self._apply_unset_price_pass()
        if unset_price_summary:
            summaries.append(unset_price_summary)
        lowest_platform_summary = self._apply_lowest_platform_pass()
        if lowest_platform_summary:
            summaries.append(lowest_platform_summary)
        self._set_summary('\n\n'.join(summaries))
        return self

    def close(self):
        self.state = CLOSED
        self.original = None
        self.working = None
        self._set_summary('')

    @property
    def is_open(self) -> bool:
        return self.state != CLOSED

    @property
    def auto_update_summary(self) -> str:
        """What the auto-correction passes changed; empty once it has expired."""
        if self._summary and self._clock() < self._summary_deadline:
            return self._summary
        return ''

    def _set_summary(self, summary: str):
        self._summary = summary
        self._summary_deadline = self._clock() + AUTO_SUMMARY_TTL if summary else 0.0

    # -- auto-correction passes ----------------------------------------------

    def _apply_unset_price_pass(self) -> str:
        """Fill price, promotional price and external URL when the price is unset."""
        result = apply_auto_update_if_needed(self.working)
        if not result.was_updated:
            return ''
        self.working = result.row
        return result.summary

    def _apply_lowest_platform_pass(self) -> str:
        """Point promotional price and external URL at the cheapest platform."""
        lowest = find_lowest_platform(self.working)
        if lowest is None:
            return ''
        platform, link, price = lowest
        needs_price = self.working.get('promotional_price') != price
        needs_url = self.working.get('external_url') != link
        if not (needs_price or needs_url):
            return ''

        old_price = self.working.get('promotional_price') or 0
        self.working['promotional_price'] = price
        self.working['external_url'] = link

        label = PLATFORM_LABELS[platform]
        lines = []
        if needs_price:
            lines.append(f'Giá khuyến mãi: {format_price_text(old_price)}₫ → {format_price_text(price)}₫')
        if needs_url:
            lines.append(f'Link ngoài: {label}')
        return f'Tự động cập nhật từ {label}:\n' + '\n'.join(lines)

    # -- editing -------------------------------------------------------------

    def set_field(self, name: str, value):
        if self.state != OPEN:
            raise ValidationError("No product is open for editing.")
        self.working[name] = value

        if platform_of_field(name) is not None:
            lowest = find_lowest_platform(self.working)
            if lowest is not None:
                platform, link, price = lowest
                self.working['promotional_price'] = price
                self.working['external_url'] = link
                logger.debug("Promotional price and external URL now follow %s: %s.", platform, price)

    @property
    def dirty_fields(self) -> set:
        if self.original is None or self.working is None:
            return set()
        names = set(self.original) | set(self.working)
        dirty = {name for name in names if self.original.get(name) != self.working.get(name)}
        for name in list(dirty):
            platform = platform_of_field(name)
            if platform is not None:
                dirty.update((link_field(platform), price_field(platform)))
        return dirty

    def is_field_changed(self, name: str) -> bool:
        if self.original is None or self.working is None:
            return False
        if name in PLATFORMS:
            return any(
                self.original.get(sub) != self.working.get(sub)
                for sub in (link_field(name), price_field(name))
            )
        return self.original.get(name) != self.working.get(name)

    def has_changes(self) -> bool:
        if self.original is None or self.working is None:
            return False
        return self.original != self.working

    # -- saving --------------------------------------------------------------

    def save(self) -> Optional[SaveResult]:
        """
        Persist the working copy.

        Returns None when there is nothing to save or a save is already in
        flight. Raises ValidationError, NotFound or LocalWriteFailed when the
        local write does not happen; audit and storefront failures are
        reported as warnings on the returned SaveResult.
        """
        if not self._save_lock.acquire(blocking=False):
            logger.info("Save already in flight – ignoring repeated request.")
            return None
        try:
            if self.state != OPEN or not self.has_changes():
                logger.info("No changes to save.")
                return None
            self.state = SAVING
            try:
                return self._save()
            except (ValidationError, NotFound, LocalWriteFailed) as exc:
                logger.error("Saving product %s failed: %s", self.working.get('id'), exc)
                raise
            finally:
                self.close()
        finally:
            self._save_lock.release()

    def _save(self) -> SaveResult:
        product_id = self.working.get('id')
        if product_id is None or product_id == '':
            raise ValidationError("Product ID is missing.")

        try:
            return self._save_existing(product_id)
        finally:
            if self.touched is not None:
                self.touched.mark(product_id)

    def _save_existing(self, product_id) -> SaveResult:
        try:
            exists = self.store.exists(product_id)
        except (StoreTimeout, DatabaseError) as exc:
            raise LocalWriteFailed(f"Could not check product {product_id}: {exc}") from exc
        if not exists:
            raise NotFound(f"Product with ID {product_id} not found in database.")

        payload = {name: value for name, value in self.working.items() if name not in SERVER_MANAGED_FIELDS}
        payload['updated_at'] = timezone.now()

        try:
            affected = self.store.update_product(product_id, payload)
        except (StoreTimeout, DatabaseError, TypeError, ValueError) as exc:
            raise LocalWriteFailed(f"Update of product {product_id} failed: {exc}") from exc
        if not affected:
            raise LocalWriteFailed(f"Update of product {product_id} affected no rows.")

        saved = dict(self.working, updated_at=payload['updated_at'])
        logger.info("Product %s updated in the database.", product_id)

        warnings = []
        try:
            self._write_audit(saved)
        except AuditWriteFailed as exc:
            logger.warning("Audit log for product %s failed: %s", product_id, exc)
            warnings.append(exc)

        remote_synced = False
        try:
            remote_synced = self._push_remote(saved)
        except RemoteWriteFailed as exc:
            logger.warning("Storefront update for product %s failed: %s", product_id, exc)
            warnings.append(exc)

        return SaveResult(
            row=saved,
            message=self._message(remote_synced, warnings),
            remote_synced=remote_synced,
            warnings=warnings,
        )

    def _write_audit(self, saved: dict):
        if not self.audit_enabled:
            logger.debug("Audit logging is disabled.")
            return
        entry = {
            'product_sku': saved.get('sku') or 'unknown',
            'product_id': _int_id(saved['id']),
            'changes': {
                'id': saved['id'],
                'old': self.original,
                'new': saved,
                'changed_fields': sorted(name for name in self.dirty_fields if name != 'updated_at'),
            },
            'updated_at': saved['updated_at'],
            'updated_by': self.actor,
            'source': self.source,
        }
        try:
            self.store.insert_audit(entry)
        except (StoreTimeout, DatabaseError, TypeError, ValueError) as exc:
            raise AuditWriteFailed(str(exc)) from exc

    def _push_remote(self, saved: dict) -> bool:
        if self.remote is None:
            logger.info("No storefront configured – skipping remote update.")
            return False

        website_id = saved.get('website_id')
        error = ''
        try:
            if not website_id:
                raise RemoteWriteFailed("No website ID provided for product.")
            try:
                self.remote.update_product(website_id, saved)
            except Exception as exc:
                raise RemoteWriteFailed(f"WooCommerce update failed: {exc}") from exc
        except RemoteWriteFailed as exc:
            error = str(exc)
            raise
        finally:
            self._log_sync(saved, error)
        return True

    def _log_sync(self, saved: dict, error: str):
        try:
            self.store.log_sync(
                product_id=str(saved['id']),
                website_id=str(saved.get('website_id') or ''),
                title=saved.get('title') or '',
                operation=SyncLog.OPERATION_UPDATE,
                status=SyncLog.STATUS_FAILED if error else SyncLog.STATUS_SUCCESS,
                error=error,
            )
        except DatabaseError as exc:
            logger.warning("Could not record sync log for product %s: %s", saved['id'], exc)

    @staticmethod
    def _message(remote_synced: bool, warnings: list) -> str:
        if not warnings:
            if remote_synced:
                return "Saved to the database and the storefront."
            return "Saved to the database."
        details = '; '.join(str(warning) for warning in warnings)
        return f"Saved to the database, with warnings: {details}"
