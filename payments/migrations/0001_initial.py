import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ApiClient",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("client_system", models.CharField(max_length=64, unique=True)),
                ("api_key", models.CharField(db_index=True, max_length=64, unique=True)),
                ("is_active", models.BooleanField(default=True)),
                ("rate_limit", models.PositiveIntegerField(default=100, help_text="Requests per rate-limit window")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name="PaymentOrder",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("external_order_id", models.CharField(max_length=64)),
                ("client_system", models.CharField(db_index=True, max_length=64)),
                ("amount", models.PositiveIntegerField()),
                ("product_info", models.CharField(max_length=400)),
                (
                    "store_type",
                    models.CharField(
                        choices=[
                            ("7ELEVEN", "7-ELEVEN"),
                            ("FAMILY", "FamilyMart"),
                            ("HILIFE", "Hi-Life"),
                            ("OKMART", "OK Mart"),
                        ],
                        default="7ELEVEN",
                        max_length=16,
                    ),
                ),
                ("callback_url", models.URLField(blank=True, default="")),
                ("internal_order_id", models.CharField(blank=True, default="", max_length=64)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("expired", "Expired"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=16,
                    ),
                ),
                (
                    "barcode_status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("generated", "Generated"), ("expired", "Expired")],
                        db_index=True,
                        default="pending",
                        max_length=16,
                    ),
                ),
                ("payment_code", models.CharField(blank=True, db_index=True, default="", max_length=32)),
                ("payment_url", models.URLField(blank=True, default="", max_length=500)),
                ("barcode_data", models.JSONField(blank=True, null=True)),
                ("expire_date", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("notified_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.AddConstraint(
            model_name="paymentorder",
            constraint=models.UniqueConstraint(
                fields=("external_order_id", "client_system"), name="uniq_external_order_per_client"
            ),
        ),
        migrations.CreateModel(
            name="GatewayTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("merchant_trade_no", models.CharField(max_length=20, unique=True)),
                ("amount", models.PositiveIntegerField()),
                ("trade_no", models.CharField(blank=True, db_index=True, default="", max_length=64)),
                ("payment_type", models.CharField(blank=True, default="", max_length=32)),
                ("payment_date", models.DateTimeField(blank=True, null=True)),
                ("response_code", models.CharField(blank=True, default="", max_length=16)),
                ("response_msg", models.CharField(blank=True, default="", max_length=255)),
                ("raw_request", models.JSONField(blank=True, null=True)),
                ("raw_response", models.JSONField(blank=True, null=True)),
                ("barcode_info", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="transactions",
                        to="payments.paymentorder",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="CustomerInfo",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("phone", models.CharField(max_length=20)),
                ("address", models.CharField(max_length=255)),
                ("city", models.CharField(max_length=64)),
                ("postal_code", models.CharField(max_length=10)),
                ("email", models.EmailField(blank=True, max_length=254, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "order",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="customer",
                        to="payments.paymentorder",
                    ),
                ),
            ],
        ),
    ]
