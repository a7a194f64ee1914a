from django.db import models
from django.utils import timezone
from django.utils.crypto import get_random_string


class ApiClient(models.Model):
    """A third-party system allowed to create orders with an ``X-API-Key``."""

    name = models.CharField(max_length=100)
    client_system = models.CharField(max_length=64, unique=True)
    api_key = models.CharField(max_length=64, unique=True, db_index=True)
    is_active = models.BooleanField(default=True)
    rate_limit = models.PositiveIntegerField(default=100, help_text="Requests per rate-limit window")
    created_at = models.DateTimeField(auto_now_add=True)

    @staticmethod
    def generate_key() -> str:
        return "tp_" + get_random_string(40)

    def save(self, *args, **kwargs):
        if not self.api_key:
            self.api_key = self.generate_key()
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.name} ({self.client_system})"


class PaymentOrder(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        EXPIRED = "expired", "Expired"
        CANCELLED = "cancelled", "Cancelled"

    class BarcodeStatus(models.TextChoices):
        PENDING = "pending", "Pending"
        GENERATED = "generated", "Generated"
        EXPIRED = "expired", "Expired"

    class StoreType(models.TextChoices):
        SEVEN_ELEVEN = "7ELEVEN", "7-ELEVEN"
        FAMILY = "FAMILY", "FamilyMart"
        HILIFE = "HILIFE", "Hi-Life"
        OKMART = "OKMART", "OK Mart"

    external_order_id = models.CharField(max_length=64)
    client_system = models.CharField(max_length=64, db_index=True)
    amount = models.PositiveIntegerField()
    product_info = models.CharField(max_length=400)
    store_type = models.CharField(max_length=16, choices=StoreType.choices, default=StoreType.SEVEN_ELEVEN)
    callback_url = models.URLField(blank=True, default="")
    internal_order_id = models.CharField(max_length=64, blank=True, default="")

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING, db_index=True)
    barcode_status = models.CharField(
        max_length=16, choices=BarcodeStatus.choices, default=BarcodeStatus.PENDING, db_index=True
    )

    payment_code = models.CharField(max_length=32, blank=True, default="", db_index=True)
    payment_url = models.URLField(max_length=500, blank=True, default="")
    barcode_data = models.JSONField(blank=True, null=True)
    expire_date = models.DateTimeField(blank=True, null=True)
    paid_at = models.DateTimeField(blank=True, null=True)
    notified_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["external_order_id", "client_system"], name="uniq_external_order_per_client"
            ),
        ]

    @property
    def is_paid(self) -> bool:
        return self.status == self.Status.PAID

    @property
    def is_overdue(self) -> bool:
        return bool(self.expire_date) and timezone.now() > self.expire_date

    @property
    def segments(self):
        return list((self.barcode_data or {}).get("segments") or [])

    @property
    def full_barcode(self) -> str:
        return (self.barcode_data or {}).get("full_barcode", "")

    def __str__(self):
        return f"{self.client_system}:{self.external_order_id} ({self.status}/{self.barcode_status})"


class GatewayTransaction(models.Model):
    """One signed request sent to the gateway for an order."""

    order = models.ForeignKey(PaymentOrder, on_delete=models.CASCADE, related_name="transactions")
    merchant_trade_no = models.CharField(max_length=20, unique=True)
    amount = models.PositiveIntegerField()

    trade_no = models.CharField(max_length=64, blank=True, default="", db_index=True)
    payment_type = models.CharField(max_length=32, blank=True, default="")
    payment_date = models.DateTimeField(blank=True, null=True)
    response_code = models.CharField(max_length=16, blank=True, default="")
    response_msg = models.CharField(max_length=255, blank=True, default="")

    raw_request = models.JSONField(blank=True, null=True)
    raw_response = models.JSONField(blank=True, null=True)
    barcode_info = models.JSONField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.merchant_trade_no} -> order {self.order_id}"


class CustomerInfo(models.Model):
    """Buyer details for an order; a placeholder is provisioned when it is paid."""

    PLACEHOLDER = {
        "name": "Payment service customer",
        "phone": "0000000000",
        "address": "Pending update",
        "city": "Pending",
        "postal_code": "00000",
        "email": None,
    }

    order = models.OneToOneField(PaymentOrder, on_delete=models.CASCADE, related_name="customer")
    name = models.CharField(max_length=100)
    phone = models.CharField(max_length=20)
    address = models.CharField(max_length=255)
    city = models.CharField(max_length=64)
    postal_code = models.CharField(max_length=10)
    email = models.EmailField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} for order {self.order_id}"
