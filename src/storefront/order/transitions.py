"""Order lifecycle — status transitions and cancellation."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order


@storefront.command(part_of="Order")
class TransitionOrder:
    order_id = Identifier(required=True)
    new_status = String(required=True, max_length=20)
    actor_role = String(required=True, max_length=20)
    actor_id = Identifier()
    note = String(max_length=500)
    tracking_number = String(max_length=255)
    carrier = String(max_length=100)


@storefront.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    actor_role = String(required=True, max_length=20)
    actor_id = Identifier()
    reason = String(max_length=500)


@storefront.command_handler(part_of=Order)
class OrderLifecycleHandler:
    @handle(TransitionOrder)
    def transition(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.transition(
            command.new_status,
            actor_role=command.actor_role,
            actor_id=command.actor_id,
            note=command.note,
            tracking_number=command.tracking_number,
            carrier=command.carrier,
        )
        repo.add(order)

    @handle(CancelOrder)
    def cancel(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.cancel(reason=command.reason, actor_role=command.actor_role, actor_id=command.actor_id)
        repo.add(order)
