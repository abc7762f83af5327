# Generated migration file for initial database schema

from decimal import Decimal

from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import vouchers.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Tenant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('business_name', models.CharField(max_length=200)),
                ('slug', models.SlugField(max_length=100, unique=True)),
                ('api_key', models.CharField(default=vouchers.models.generate_api_key, max_length=64, unique=True)),
                ('paybill_number', models.CharField(blank=True, max_length=20)),
                ('commission_rate', models.DecimalField(decimal_places=2, default=Decimal('20.00'), max_digits=5)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['business_name'],
            },
        ),
        migrations.CreateModel(
            name='Router',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100)),
                ('host', models.CharField(max_length=255)),
                ('port', models.IntegerField(default=8728)),
                ('username', models.CharField(max_length=100)),
                ('password', models.CharField(max_length=255)),
                ('use_ssl', models.BooleanField(default=False)),
                ('hotspot_server', models.CharField(default='hotspot1', max_length=50)),
                ('status', models.CharField(choices=[('online', 'Online'), ('offline', 'Offline'), ('configuring', 'Configuring'), ('error', 'Error')], default='configuring', max_length=20)),
                ('last_seen', models.DateTimeField(blank=True, null=True)),
                ('last_error', models.TextField(blank=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='routers', to='vouchers.tenant')),
            ],
            options={
                'ordering': ['tenant', 'name'],
                'unique_together': {('tenant', 'name')},
            },
        ),
        migrations.CreateModel(
            name='Package',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=64)),
                ('display_name', models.CharField(blank=True, max_length=100)),
                ('duration_minutes', models.PositiveIntegerField()),
                ('upload_kbps', models.PositiveIntegerField(default=512)),
                ('download_kbps', models.PositiveIntegerField(default=1024)),
                ('data_limit_mb', models.PositiveIntegerField(default=0)),
                ('price', models.DecimalField(decimal_places=2, max_digits=10)),
                ('currency', models.CharField(default='KES', max_length=3)),
                ('is_active', models.BooleanField(default=True)),
                ('router', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='packages', to='vouchers.router')),
            ],
            options={
                'ordering': ['router', 'duration_minutes'],
                'unique_together': {('router', 'name')},
            },
        ),
        migrations.CreateModel(
            name='Voucher',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=32)),
                ('password', models.CharField(max_length=32)),
                ('reference', models.CharField(db_index=True, max_length=20)),
                ('package_name', models.CharField(max_length=64)),
                ('package_display_name', models.CharField(blank=True, max_length=100)),
                ('duration_minutes', models.PositiveIntegerField()),
                ('upload_kbps', models.PositiveIntegerField(default=512)),
                ('download_kbps', models.PositiveIntegerField(default=1024)),
                ('data_limit_mb', models.PositiveIntegerField(default=0)),
                ('price', models.DecimalField(decimal_places=2, max_digits=10)),
                ('currency', models.CharField(default='KES', max_length=3)),
                ('state', models.CharField(choices=[('active', 'Active'), ('paid', 'Paid'), ('used', 'Used'), ('expired', 'Expired'), ('cancelled', 'Cancelled')], db_index=True, default='active', max_length=20)),
                ('used', models.BooleanField(default=False)),
                ('start_time', models.DateTimeField(blank=True, null=True)),
                ('expected_end_time', models.DateTimeField(blank=True, null=True)),
                ('end_time', models.DateTimeField(blank=True, null=True)),
                ('device_mac', models.CharField(blank=True, max_length=17)),
                ('device_ip', models.GenericIPAddressField(blank=True, null=True)),
                ('data_used', models.BigIntegerField(default=0)),
                ('time_used', models.PositiveIntegerField(default=0)),
                ('payment_method', models.CharField(blank=True, max_length=20)),
                ('transaction_id', models.CharField(blank=True, max_length=100)),
                ('payer_phone', models.CharField(blank=True, max_length=20)),
                ('amount_paid', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('commission', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('paid_at', models.DateTimeField(blank=True, null=True)),
                ('expires_at', models.DateTimeField(db_index=True)),
                ('activation_expires_at', models.DateTimeField()),
                ('timed_on_purchase', models.BooleanField(default=False)),
                ('auto_delete', models.BooleanField(default=True)),
                ('expired_reason', models.CharField(blank=True, choices=[('activation_expiry', 'Not purchased in time'), ('purchase_expiry', 'Not activated in time after purchase'), ('usage_expiry', 'Session duration elapsed')], max_length=30)),
                ('batch_id', models.CharField(blank=True, db_index=True, max_length=50)),
                ('batch_size', models.PositiveIntegerField(default=1)),
                ('created_by', models.CharField(blank=True, max_length=100)),
                ('synced_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('package', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='vouchers', to='vouchers.package')),
                ('router', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='vouchers', to='vouchers.router')),
                ('tenant', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='vouchers', to='vouchers.tenant')),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['state', 'expires_at'], name='voucher_state_expires_idx')],
                'constraints': [models.UniqueConstraint(fields=('router', 'code'), name='unique_voucher_code_per_router'), models.UniqueConstraint(fields=('router', 'reference'), name='unique_voucher_reference_per_router')],
            },
        ),
        migrations.CreateModel(
            name='Payment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('transaction_id', models.CharField(max_length=100, unique=True)),
                ('payer_reference', models.CharField(blank=True, db_index=True, max_length=100)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=10)),
                ('phone_number', models.CharField(blank=True, max_length=100)),
                ('recipient', models.CharField(blank=True, max_length=20)),
                ('method', models.CharField(default='mpesa', max_length=20)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('completed', 'Completed'), ('failed', 'Failed')], default='pending', max_length=20)),
                ('failure_reason', models.CharField(blank=True, max_length=255)),
                ('reconciled', models.BooleanField(default=False)),
                ('reconciled_at', models.DateTimeField(blank=True, null=True)),
                ('reconciliation_error', models.CharField(blank=True, max_length=100)),
                ('provider_timestamp', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('router', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='payments', to='vouchers.router')),
                ('tenant', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='payments', to='vouchers.tenant')),
                ('voucher', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='payments', to='vouchers.voucher')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='PaymentWebhook',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('source', models.CharField(choices=[('generic', 'Generic payment event'), ('mpesa_c2b', 'M-Pesa C2B confirmation')], default='generic', max_length=20)),
                ('event_type', models.CharField(blank=True, max_length=50)),
                ('transaction_id', models.CharField(blank=True, db_index=True, max_length=100)),
                ('raw_payload', models.JSONField()),
                ('received_at', models.DateTimeField(auto_now_add=True)),
                ('processed_at', models.DateTimeField(blank=True, null=True)),
                ('processing_status', models.CharField(choices=[('received', 'Received'), ('processed', 'Processed Successfully'), ('failed', 'Processing Failed'), ('ignored', 'Ignored')], default='received', max_length=20)),
                ('processing_error', models.TextField(blank=True)),
                ('source_ip', models.GenericIPAddressField(blank=True, null=True)),
                ('payment', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='webhook_logs', to='vouchers.payment')),
            ],
            options={
                'ordering': ['-received_at'],
            },
        ),
        migrations.CreateModel(
            name='VerificationAttempt',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('mac_address', models.CharField(blank=True, max_length=17)),
                ('router_id_raw', models.CharField(blank=True, max_length=64)),
                ('transaction_code', models.CharField(blank=True, max_length=32)),
                ('success', models.BooleanField(default=False)),
                ('error_code', models.CharField(blank=True, max_length=40)),
                ('timestamp', models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                'ordering': ['-timestamp'],
                'indexes': [models.Index(fields=['mac_address', 'timestamp'], name='verify_mac_timestamp_idx')],
            },
        ),
    ]
