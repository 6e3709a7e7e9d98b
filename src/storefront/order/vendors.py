"""Per-vendor fulfilment — command and handler."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.order.order import Order


@storefront.command(part_of="Order")
class UpdateVendorOrderStatus:
    order_id = Identifier(required=True)
    vendor_id = Identifier(required=True)
    status = String(required=True, max_length=20)
    actor_role = String(required=True, max_length=20)
    actor_id = Identifier()
    tracking_number = String(max_length=255)
    carrier = String(max_length=100)


@storefront.command_handler(part_of=Order)
class UpdateVendorOrderStatusHandler:
    @handle(UpdateVendorOrderStatus)
    def update_vendor_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.update_vendor_status(
            command.vendor_id,
            command.status,
            actor_role=command.actor_role,
            actor_id=command.actor_id,
            tracking_number=command.tracking_number,
            carrier=command.carrier,
        )
        repo.add(order)
