from django.conf import settings
from django.db import models

from common.models import TimeStampedModel

from .event import Event


class PendingPayment(models.Model):
    """A payment intent created with the processor and not yet reconciled.

    Deleted in the same transaction that issues the ticket. A row that is still
    present means reconciliation has not finished; ``completed`` means it
    finished without a ticket (the payment was refunded).
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        COMPLETED = "completed", "Completed"

    payment_intent_id = models.CharField(max_length=255, primary_key=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="pending_payments")
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="pending_payments")
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default=settings.DEFAULT_CURRENCY)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"PendingPayment {self.payment_intent_id} ({self.status})"


class FailedPurchase(TimeStampedModel):
    """Audit record for a payment that succeeded without producing a ticket.

    Append-only: rows are created by the purchase workflow and only ever have
    their ``status``/``refund_id``/``error_code`` moved forward.
    """

    class Status(models.TextChoices):
        REFUND_INITIATED = "refund_initiated", "Refund initiated"
        REFUNDED = "refunded", "Refunded"
        REFUND_FAILED = "refund_failed", "Refund failed"
        ERROR = "error", "Error"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name="failed_purchases"
    )
    # Nullable so the audit survives event deletion and a missing-event failure can be recorded.
    event = models.ForeignKey(Event, on_delete=models.SET_NULL, null=True, blank=True, related_name="failed_purchases")
    payment_intent_id = models.CharField(max_length=255, db_index=True)
    amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    reason = models.TextField()
    error_code = models.CharField(max_length=64, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, db_index=True)
    refund_id = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"FailedPurchase {self.payment_intent_id} ({self.status})"
