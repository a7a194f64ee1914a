"""ECPay ``CheckMacValue`` signing.

The canonical form is gateway specific and has to be reproduced exactly:

1. drop any ``CheckMacValue`` already present,
2. sort the remaining keys case-insensitively and join them as ``k=v`` with ``&``,
3. wrap as ``HashKey=<key>&...&HashIV=<iv>``,
4. URL-encode with spaces as ``+`` and only ``-_.~`` left unescaped
   (so ``!'()*`` become ``%21 %27 %28 %29 %2A``),
5. lower-case the whole encoded string,
6. SHA-256, hex, upper-case.
"""

import hashlib
import hmac
import logging
from urllib.parse import quote_plus

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

FIELD = "CheckMacValue"


def gateway_keys():
    """Return ``(hash_key, hash_iv)`` from ``settings.ECPAY``."""
    conf = getattr(settings, "ECPAY", {}) or {}
    key, iv = conf.get("HASH_KEY"), conf.get("HASH_IV")
    if not key or not iv:
        logger.error("ECPAY HASH_KEY/HASH_IV missing in settings")
        raise ImproperlyConfigured("ECPAY['HASH_KEY'] and ECPAY['HASH_IV'] are required to sign requests")
    return key, iv


def _value(value) -> str:
    return "" if value is None else str(value)


def canonicalize(params: dict, key: str, iv: str) -> str:
    # Ordinal order of the lower-cased names, as strcasecmp sorts in ECPay's own SDKs.
    pairs = sorted(
        ((k, _value(v)) for k, v in params.items() if k != FIELD),
        key=lambda kv: kv[0].lower(),
    )
    raw = "&".join([f"HashKey={key}", *(f"{k}={v}" for k, v in pairs), f"HashIV={iv}"])
    return quote_plus(raw, safe="-_.~").lower()


def sign(params: dict, key: str = None, iv: str = None) -> str:
    if key is None or iv is None:
        key, iv = gateway_keys()
    digest = hashlib.sha256(canonicalize(params, key, iv).encode("utf-8"))
    return digest.hexdigest().upper()


def verify(params: dict, key: str = None, iv: str = None) -> bool:
    """True when ``params[CheckMacValue]`` matches the rest of ``params``."""
    received = _value(params.get(FIELD)).strip().upper()
    if not received:
        return False
    return hmac.compare_digest(sign(params, key, iv), received)


def signed(params: dict, key: str = None, iv: str = None) -> dict:
    """Copy of ``params`` with a fresh ``CheckMacValue`` attached."""
    out = {k: v for k, v in params.items() if k != FIELD}
    out[FIELD] = sign(out, key, iv)
    return out
