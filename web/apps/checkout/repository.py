"""Repository layer for persisting finalized orders.

The repository keeps a thin interface so the checkout core is not coupled to
Django ORM details: it accepts domain ``Order`` objects and returns
primitives or domain objects.
"""

from .domain import Order, PaymentProvider
from .models import OrderModel


class OrderRepository:
    """Append-only order log for one user, backed by the Django ORM."""

    def __init__(self, user_id=None):
        self.user_id = user_id

    def create(self, order: Order):
        """Persist a new order record.

        Args:
            order: Domain ``Order`` to persist.

        Returns:
            The persisted ``OrderModel`` primary key (UUID).
        """
        obj = OrderModel.objects.create(
            order_number=order.id,
            user_id=self.user_id,
            payment_method=order.payment_method.value,
            payment_reference=order.payment_reference or "",
            full_name=order.full_name,
            address=order.address,
            contact=order.contact,
            lines=[line.to_dict() for line in order.lines],
            total=order.total,
            created_at=order.created_at,
        )
        return obj.id

    def list(self) -> list[Order]:
        qs = OrderModel.objects.filter(user_id=self.user_id).order_by("-internal_id")
        return [self._to_domain(o) for o in qs]

    def get(self, order_number: int) -> Order | None:
        """Return this user's order with the given number, or None."""
        o = OrderModel.objects.filter(user_id=self.user_id, order_number=order_number).first()
        return self._to_domain(o) if o is not None else None

    @staticmethod
    def _to_domain(o: OrderModel) -> Order:
        return Order.from_dict(
            {
                "id": o.order_number,
                "full_name": o.full_name,
                "address": o.address,
                "contact": o.contact,
                "payment_method": PaymentProvider(o.payment_method).value,
                "lines": o.lines,
                "total": o.total,
                "created_at": o.created_at.isoformat(),
                "payment_reference": o.payment_reference or None,
            }
        )
