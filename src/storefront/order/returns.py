"""Item returns on delivered orders."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order


@storefront.command(part_of="Order")
class RequestReturn:
    """Request a return of one item of a delivered order, providing a reason."""

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    actor_role = String(required=True, max_length=20)
    actor_id = Identifier()


@storefront.command_handler(part_of=Order)
class RequestReturnHandler:
    @handle(RequestReturn)
    def request_return(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.request_return(
            command.item_id,
            command.reason,
            actor_role=command.actor_role,
            actor_id=command.actor_id,
        )
        repo.add(order)
