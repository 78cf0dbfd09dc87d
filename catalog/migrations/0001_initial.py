import django.core.serializers.json
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Project',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('slug', models.SlugField(max_length=100, unique=True)),
                ('woocommerce_base_url', models.URLField(blank=True)),
                ('woocommerce_consumer_key', models.CharField(blank=True, max_length=200)),
                ('woocommerce_consumer_secret', models.CharField(blank=True, max_length=200)),
                ('is_active', models.BooleanField(default=True)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name='ProductUpdate',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('product_sku', models.CharField(max_length=100)),
                ('product_id', models.BigIntegerField(blank=True, null=True)),
                ('changes', models.JSONField(encoder=django.core.serializers.json.DjangoJSONEncoder)),
                ('updated_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_by', models.CharField(max_length=100)),
                ('source', models.CharField(max_length=50)),
            ],
        ),
        migrations.CreateModel(
            name='SyncLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('product_id', models.CharField(max_length=50)),
                ('website_id', models.CharField(blank=True, max_length=50)),
                ('title', models.CharField(blank=True, max_length=500)),
                ('operation', models.CharField(max_length=10)),
                ('status', models.CharField(max_length=10)),
                ('error', models.TextField(blank=True)),
                ('timestamp', models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('website_id', models.CharField(blank=True, db_index=True, max_length=50)),
                ('sku', models.CharField(blank=True, max_length=100)),
                ('title', models.CharField(blank=True, max_length=500)),
                ('category', models.CharField(blank=True, max_length=200)),
                ('price', models.FloatField(blank=True, null=True)),
                ('promotional_price', models.FloatField(blank=True, null=True)),
                ('currency', models.CharField(default='VND', max_length=10)),
                ('image_url', models.TextField(blank=True)),
                ('external_url', models.TextField(blank=True)),
                ('het_hang', models.JSONField(blank=True, null=True)),
                ('link_shopee', models.TextField(blank=True)),
                ('gia_shopee', models.FloatField(blank=True, null=True)),
                ('link_tiktok', models.TextField(blank=True)),
                ('gia_tiktok', models.FloatField(blank=True, null=True)),
                ('link_lazada', models.TextField(blank=True)),
                ('gia_lazada', models.FloatField(blank=True, null=True)),
                ('link_dmx', models.TextField(blank=True)),
                ('gia_dmx', models.FloatField(blank=True, null=True)),
                ('link_tiki', models.TextField(blank=True)),
                ('gia_tiki', models.FloatField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('project', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='products', to='catalog.project')),
            ],
        ),
    ]
