import pytest

from catalog.models import Product, Project
from catalog.store import ProductStore

BASE_URL = 'https://shop.example.vn'
API_URL = f'{BASE_URL}/wp-json/wc/v3'


@pytest.fixture(autouse=True)
def override_settings(settings):
    settings.WOOCOMMERCE_BASE_URL = ''
    settings.WOOCOMMERCE_CONSUMER_KEY = ''
    settings.WOOCOMMERCE_CONSUMER_SECRET = ''
    settings.CATALOG_AUDIT_ENABLED = True


@pytest.fixture()
def project(db):
    return Project.objects.create(
        name='Điện máy Demo',
        slug='demo',
        woocommerce_base_url=BASE_URL,
        woocommerce_consumer_key='ck_test',
        woocommerce_consumer_secret='cs_test',
    )


@pytest.fixture()
def store(project):
    return ProductStore(project)


@pytest.fixture()
def make_product(project):
    """Create a product row for the test project."""
    def _make(**fields):
        defaults = {
            'title': 'Nồi chiên không dầu',
            'sku': 'AF-001',
            'website_id': '1001',
            'price': 1500000,
            'het_hang': False,
        }
        defaults.update(fields)
        return Product.objects.create(project=project, **defaults)
    return _make
