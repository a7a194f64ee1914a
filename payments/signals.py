from django.dispatch import Signal

# Sent after commit when an order first becomes paid. Receivers get ``order``.
payment_completed = Signal()
