from unittest.mock import patch

import pytest
import responses as responses_lib
from django.db import DatabaseError

from catalog.models import Product, Project
from catalog.tasks import apply_auto_prices_task, import_missing_products_task

API_URL = 'https://shop.example.vn/wp-json/wc/v3'

STOREFRONT_PRODUCTS = [
    {
        'id': 1001,
        'name': 'Nồi chiên không dầu',
        'sku': 'AF-001',
        'regular_price': '1500000',
        'sale_price': '',
    },
    {
        'id': 1002,
        'name': 'Quạt đứng',
        'sku': 'FAN-2',
        'regular_price': '690000',
        'sale_price': '590000',
        'images': [{'src': 'https://cdn.example.vn/fan.jpg'}],
        'meta_data': [
            {'key': 'link_shopee', 'value': 'https://shopee.vn/quat'},
            {'key': 'gia_shopee', 'value': '590.000'},
        ],
    },
]


# ---------------------------------------------------------------------------
# import_missing_products
# ---------------------------------------------------------------------------

@pytest.mark.django_db
@responses_lib.activate
def test_import_creates_only_unknown_products(project, make_product):
    make_product(website_id='1001')
    responses_lib.add(responses_lib.GET, f'{API_URL}/products', json=STOREFRONT_PRODUCTS)

    result = import_missing_products_task(project.pk)

    assert result == {'seen': 2, 'created': 1, 'errors': 0}
    imported = Product.objects.get(website_id='1002')
    assert imported.project == project
    assert imported.title == 'Quạt đứng'
    assert imported.promotional_price == 590000
    assert imported.link_shopee == 'https://shopee.vn/quat'
    assert imported.image_url == 'https://cdn.example.vn/fan.jpg'


@pytest.mark.django_db
@responses_lib.activate
def test_import_is_idempotent(project):
    responses_lib.add(responses_lib.GET, f'{API_URL}/products', json=STOREFRONT_PRODUCTS)
    responses_lib.add(responses_lib.GET, f'{API_URL}/products', json=STOREFRONT_PRODUCTS)

    import_missing_products_task(project.pk)
    result = import_missing_products_task(project.pk)

    assert result['created'] == 0
    assert Product.objects.count() == 2


@pytest.mark.django_db
@responses_lib.activate
def test_import_failed_batch_is_counted(project):
    responses_lib.add(responses_lib.GET, f'{API_URL}/products', json=STOREFRONT_PRODUCTS)

    with patch('catalog.store.ProductStore.create_products', side_effect=DatabaseError('locked')):
        result = import_missing_products_task(project.pk)

    assert result == {'seen': 2, 'created': 0, 'errors': 2}
    assert Product.objects.count() == 0


@pytest.mark.django_db
@responses_lib.activate
def test_import_listing_failure_keeps_what_was_fetched(project):
    page = [dict(STOREFRONT_PRODUCTS[0], id=n) for n in range(1, 101)]
    responses_lib.add(responses_lib.GET, f'{API_URL}/products', json=page)
    responses_lib.add(responses_lib.GET, f'{API_URL}/products', json={'code': 'error'}, status=500)

    result = import_missing_products_task(project.pk)

    assert result['seen'] == 100
    assert result['created'] == 100
    assert result['errors'] == 1


@pytest.mark.django_db
def test_import_skips_deleted_project(project):
    project.soft_delete()
    with pytest.raises(Project.DoesNotExist):
        import_missing_products_task(project.pk)


# ---------------------------------------------------------------------------
# apply_auto_prices
# ---------------------------------------------------------------------------

@pytest.mark.django_db
def test_auto_prices_fill_unset_prices_only(project, make_product):
    unset = make_product(
        price=None,
        link_shopee='https://shopee.vn/noi-chien', gia_shopee=1290000,
        link_tiki='https://tiki.vn/noi-chien', gia_tiki=1390000,
    )
    priced = make_product(price=990000, link_shopee='https://shopee.vn/other', gia_shopee=900000)
    no_platforms = make_product(price=0)

    result = apply_auto_prices_task(project.pk)

    assert result == {'updated': 1, 'skipped': 2, 'errors': 0}
    unset.refresh_from_db()
    assert unset.price == 1390000
    assert unset.promotional_price == 1290000
    assert unset.external_url == 'https://shopee.vn/noi-chien'
    priced.refresh_from_db()
    assert priced.price == 990000
    no_platforms.refresh_from_db()
    assert no_platforms.price == 0


@pytest.mark.django_db
def test_auto_prices_write_failure_is_counted(project, make_product):
    make_product(price=None, link_shopee='https://shopee.vn/noi-chien', gia_shopee=1290000)

    with patch('catalog.store.ProductStore.update_product', side_effect=DatabaseError('locked')):
        result = apply_auto_prices_task(project.pk)

    assert result == {'updated': 0, 'skipped': 0, 'errors': 1}
