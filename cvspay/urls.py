from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/third-party/", include("payments.urls")),
    path("api/barcode/", include("barcodes.urls")),
]

handler404 = "cvspay.views.error_404_view"
handler500 = "cvspay.views.error_500_view"
