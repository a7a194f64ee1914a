from .base import *

DEBUG = False

SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'cvspay-tests',
    }
}

ALLOWED_HOSTS = ['testserver']

# Public sandbox credentials published by the gateway for integration testing.
ECPAY = {
    **ECPAY,
    'MERCHANT_ID': '2000132',
    'HASH_KEY': '5294y06JbISpM5x9',
    'HASH_IV': 'v77hoKGq4kWxNNIS',
    'API_URL': 'https://payment-stage.ecpay.com.tw/Cashier/AioCheckOut/V5',
    'QUERY_URL': 'https://payment-stage.ecpay.com.tw/Cashier/QueryPaymentInfo',
    'RETURN_URL': 'https://testserver/api/third-party/ecpay/callback',
    'PAYMENT_INFO_URL': 'https://testserver/api/third-party/ecpay/payment-info',
}

PAYMENTS = {
    **PAYMENTS,
    'PUBLIC_BASE_URL': 'https://testserver',
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {'null': {'class': 'logging.NullHandler'}},
    'root': {'handlers': ['null'], 'level': 'WARNING'},
}
