from datetime import timedelta

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone

from .exceptions import ValidationError

RESTORE_WINDOW = timedelta(days=7)


class ProjectQuerySet(models.QuerySet):
    def active(self):
        return self.filter(deleted_at__isnull=True, is_active=True)


class Project(models.Model):
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=100, unique=True)
    woocommerce_base_url = models.URLField(blank=True)
    woocommerce_consumer_key = models.CharField(max_length=200, blank=True)
    woocommerce_consumer_secret = models.CharField(max_length=200, blank=True)
    is_active = models.BooleanField(default=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = ProjectQuerySet.as_manager()

    def __str__(self):
        return f"{self.name} ({self.slug})"

    @property
    def is_restorable(self) -> bool:
        return self.deleted_at is not None and timezone.now() - self.deleted_at <= RESTORE_WINDOW

    def soft_delete(self):
        self.deleted_at = timezone.now()
        self.save(update_fields=['deleted_at'])

    def restore(self):
        if self.deleted_at is None:
            return
        if not self.is_restorable:
            raise ValidationError(f"Project {self.slug} was deleted more than 7 days ago and cannot be restored.")
        self.deleted_at = None
        self.save(update_fields=['deleted_at'])


class Product(models.Model):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='products')
    website_id = models.CharField(max_length=50, blank=True, db_index=True)
    sku = models.CharField(max_length=100, blank=True)
    title = models.CharField(max_length=500, blank=True)
    category = models.CharField(max_length=200, blank=True)
    price = models.FloatField(null=True, blank=True)
    promotional_price = models.FloatField(null=True, blank=True)
    currency = models.CharField(max_length=10, default='VND')
    image_url = models.TextField(blank=True)
    external_url = models.TextField(blank=True)
    # Raw stock flag as delivered (bool, 0/1 or a localized label).
    het_hang = models.JSONField(null=True, blank=True)

    link_shopee = models.TextField(blank=True)
    gia_shopee = models.FloatField(null=True, blank=True)
    link_tiktok = models.TextField(blank=True)
    gia_tiktok = models.FloatField(null=True, blank=True)
    link_lazada = models.TextField(blank=True)
    gia_lazada = models.FloatField(null=True, blank=True)
    link_dmx = models.TextField(blank=True)
    gia_dmx = models.FloatField(null=True, blank=True)
    link_tiki = models.TextField(blank=True)
    gia_tiki = models.FloatField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(default=timezone.now, db_index=True)

    def __str__(self):
        return f"{self.sku or self.pk}: {self.title[:40]}"


class ProductUpdate(models.Model):
    """Append-only audit entry written after each successful product save."""

    product_sku = models.CharField(max_length=100)
    product_id = models.BigIntegerField(null=True, blank=True)
    changes = models.JSONField(encoder=DjangoJSONEncoder)
    updated_at = models.DateTimeField(default=timezone.now)
    updated_by = models.CharField(max_length=100)
    source = models.CharField(max_length=50)

    def __str__(self):
        return f"{self.product_sku} by {self.updated_by} at {self.updated_at:%Y-%m-%d %H:%M}"


class SyncLog(models.Model):
    OPERATION_UPDATE = 'update'
    OPERATION_SYNC = 'sync'
    STATUS_SUCCESS = 'success'
    STATUS_FAILED = 'failed'

    product_id = models.CharField(max_length=50)
    website_id = models.CharField(max_length=50, blank=True)
    title = models.CharField(max_length=500, blank=True)
    operation = models.CharField(max_length=10)
    status = models.CharField(max_length=10)
    error = models.TextField(blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.operation} {self.product_id}: {self.status}"
