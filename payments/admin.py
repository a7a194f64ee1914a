from django.contrib import admin

from .models import ApiClient, CustomerInfo, GatewayTransaction, PaymentOrder


class GatewayTransactionInline(admin.TabularInline):
    model = GatewayTransaction
    extra = 0
    fields = ("merchant_trade_no", "trade_no", "response_code", "response_msg", "payment_date")
    readonly_fields = fields
    can_delete = False


@admin.register(PaymentOrder)
class PaymentOrderAdmin(admin.ModelAdmin):
    list_display = ("id", "payment_code", "client_system", "external_order_id", "amount",
                    "status", "barcode_status", "expire_date", "paid_at", "created_at")
    search_fields = ("payment_code", "external_order_id", "client_system", "transactions__merchant_trade_no")
    list_filter = ("status", "barcode_status", "store_type", "client_system", "created_at")
    readonly_fields = ("payment_code", "barcode_data", "paid_at", "notified_at", "created_at", "updated_at")
    inlines = [GatewayTransactionInline]


@admin.register(GatewayTransaction)
class GatewayTransactionAdmin(admin.ModelAdmin):
    list_display = ("merchant_trade_no", "order", "amount", "trade_no", "response_code", "payment_date", "created_at")
    search_fields = ("merchant_trade_no", "trade_no")
    list_filter = ("response_code", "payment_type", "created_at")
    readonly_fields = ("raw_request", "raw_response", "barcode_info", "created_at", "updated_at")


@admin.register(CustomerInfo)
class CustomerInfoAdmin(admin.ModelAdmin):
    list_display = ("order", "name", "phone", "city", "email", "created_at")
    search_fields = ("name", "phone", "email", "order__external_order_id")


@admin.register(ApiClient)
class ApiClientAdmin(admin.ModelAdmin):
    list_display = ("name", "client_system", "is_active", "rate_limit", "created_at")
    list_filter = ("is_active",)
    search_fields = ("name", "client_system")
    readonly_fields = ("created_at",)
