import uuid
from django.conf import settings
from django.db import models, transaction


class OrderModel(models.Model):
    """Durable copy of a finalized order, keyed by user."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # insertion counter, assigned once in save()
    internal_id = models.BigIntegerField(unique=True, editable=False, null=True)

    class PaymentMethod(models.TextChoices):
        QR = "QR"
        CARD = "CARD"

    order_number = models.BigIntegerField(db_index=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name="orders"
    )
    payment_method = models.CharField(max_length=8, choices=PaymentMethod.choices)
    payment_reference = models.CharField(max_length=128, blank=True, default="")
    full_name = models.CharField(max_length=255)
    address = models.TextField()
    contact = models.CharField(max_length=64)
    lines = models.JSONField(default=list)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField()

    class Meta:
        db_table = "orders"
        ordering = ["-internal_id"]

    def save(self, *args, **kwargs):
        # internal_id is set on first save only
        if self.internal_id is None:
            with transaction.atomic():
                last = (
                    OrderModel.objects.select_for_update()
                    .order_by("-internal_id")
                    .first()
                )
                self.internal_id = 1 if not last or last.internal_id is None else last.internal_id + 1

        super().save(*args, **kwargs)
