import logging
import time

from django.core.management.base import BaseCommand
from django.utils import timezone

from payments import services
from payments.exceptions import PaymentError
from payments.models import PaymentOrder
from payments.reconcile import query_and_refresh

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Query ECPay for pending barcode orders and persist expiry of overdue ones"

    def add_arguments(self, parser):
        parser.add_argument("--max", type=int, default=50)
        parser.add_argument("--sleep", type=float, default=0.5)
        parser.add_argument("--older-than-minutes", type=int, default=1)

    def handle(self, *args, **opts):
        now = timezone.now()
        overdue = PaymentOrder.objects.filter(status=PaymentOrder.Status.PENDING, expire_date__lt=now)
        for o in overdue[:opts["max"]]:
            services.check_expiry(o)
            self.stdout.write(self.style.WARNING(f"Order {o.pk} expired"))

        cutoff = now - timezone.timedelta(minutes=opts["older_than_minutes"])
        qs = (
            PaymentOrder.objects.filter(
                status=PaymentOrder.Status.PENDING,
                barcode_status=PaymentOrder.BarcodeStatus.PENDING,
                updated_at__lt=cutoff,
            )
            .order_by("updated_at")[:opts["max"]]
        )
        if not qs.exists():
            self.stdout.write(self.style.SUCCESS("No pending orders to reconcile."))
            return

        for o in qs:
            try:
                outcome = query_and_refresh(o)
            except PaymentError as e:
                logger.warning("Reconcile of order %s failed: %s", o.pk, e)
                self.stdout.write(self.style.WARNING(f"Order {o.pk}: {e}"))
                time.sleep(opts["sleep"])
                continue
            if outcome["success"]:
                order = outcome["order"]
                self.stdout.write(self.style.SUCCESS(
                    f"Order {o.pk} -> status={order.status} barcode={order.barcode_status}"
                    f" (trade_status={outcome['trade_status'] or '-'})"
                ))
            else:
                self.stdout.write(self.style.WARNING(f"Order {o.pk}: {outcome['error']['message']}"))
            time.sleep(opts["sleep"])
