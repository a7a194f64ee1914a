from django.urls import path

from . import views

app_name = "barcodes"
urlpatterns = [
    path("generate-multi", views.generate_multi_view, name="generate_multi"),
    path("validate", views.validate_view, name="validate"),
    path("generate/<path:text>", views.generate_view, name="generate"),
]
