from django.urls import path

from . import views, webhook

app_name = "payments"
urlpatterns = [
    path("barcode/create", views.create_barcode_order_view, name="barcode_create"),
    path("orders", views.list_orders_view, name="order_list"),
    path("orders/<int:order_id>/status", views.order_status_view, name="order_status"),
    path("orders/<int:order_id>/barcode", views.order_barcode_view, name="order_barcode"),
    path("orders/<int:order_id>/barcode/query", views.order_barcode_query_view, name="order_barcode_query"),
    path("orders/<int:order_id>/cancel", views.cancel_order_view, name="order_cancel"),
    # Gateway webhooks (signature-verified, no API key)
    path("ecpay/callback", webhook.ecpay_callback, name="ecpay_callback"),
    path("ecpay/payment-info", webhook.ecpay_payment_info, name="ecpay_payment_info"),
]
