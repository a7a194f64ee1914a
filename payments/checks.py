from django.conf import settings
from django.core.checks import Error, Warning, register

REQUIRED_KEYS = ("MERCHANT_ID", "HASH_KEY", "HASH_IV")


@register()
def check_gateway_settings(app_configs, **kwargs):
    conf = getattr(settings, "ECPAY", None) or {}
    errors = []
    missing = [k for k in REQUIRED_KEYS if not conf.get(k)]
    if missing:
        errors.append(Error(
            f"ECPAY settings missing: {', '.join(missing)}",
            hint="Set ECPAY_MERCHANT_ID, ECPAY_HASH_KEY and ECPAY_HASH_IV in the environment or .env",
            id="payments.E001",
        ))
    for key in ("RETURN_URL", "PAYMENT_INFO_URL"):
        url = conf.get(key) or ""
        if not url.startswith("https://"):
            errors.append(Warning(
                f"ECPAY['{key}'] should be a public HTTPS URL, got {url!r}",
                id="payments.W001",
            ))
    return errors
