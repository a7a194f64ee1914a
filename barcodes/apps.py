from django.apps import AppConfig


class BarcodesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "barcodes"
    verbose_name = "Code39 barcodes"
