"""Payment status tracking.

The storefront never captures money. Payment systems report back through this
command and the order records what they said.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order


@storefront.command(part_of="Order")
class UpdatePaymentStatus:
    order_id = Identifier(required=True)
    payment_status = String(required=True, max_length=20)
    actor_role = String(required=True, max_length=20)
    transaction_id = String(max_length=255)


@storefront.command_handler(part_of=Order)
class UpdatePaymentStatusHandler:
    @handle(UpdatePaymentStatus)
    def update_payment_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.update_payment_status(
            command.payment_status,
            actor_role=command.actor_role,
            transaction_id=command.transaction_id,
        )
        repo.add(order)
