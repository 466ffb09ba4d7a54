"""
Order router - /api/orders/*
Orders, items, kitchen dispatch, discounts and cancellation.
Thin router delegating to OrderService and DiscountResolver.
"""

from fastapi import APIRouter, Depends, status

from pos_shared.security.auth import Actor, current_actor
from pos_shared.utils.schemas import (
    AddItemsRequest,
    CancelItemRequest,
    CancelOrderRequest,
    CreateOrderRequest,
    DiscountCodeRequest,
    DiscountOutput,
    KotOutput,
    ManualDiscountRequest,
    OrderItemInput,
    OrderItemOutput,
    OrderOutput,
    OrderTransferOutput,
    OrderTypeLiteral,
    TransferTableRequest,
    UpdateItemQuantityRequest,
)
from pos_api.core.dependencies import get_discount_resolver, get_order_service
from pos_api.services.domain import DiscountResolver, NewItem, OrderService

router = APIRouter(prefix="/api/orders", tags=["orders"])


def _new_items(items: list[OrderItemInput]) -> list[NewItem]:
    return [
        NewItem(item_id=i.item_id, quantity=i.quantity, variant_id=i.variant_id, notes=i.notes)
        for i in items
    ]


@router.post("", response_model=OrderOutput, status_code=status.HTTP_201_CREATED)
def create_order(
    body: CreateOrderRequest,
    actor: Actor = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderOutput:
    """
    Create an order.
    Dine-in orders start a session on a free table or join the caller's session.
    """
    order = service.create_order(
        actor,
        order_type=body.order_type,
        table_id=body.table_id,
        customer_name=body.customer_name,
        customer_phone=body.customer_phone,
        is_interstate=body.is_interstate,
        guest_count=body.guest_count,
        guest_name=body.guest_name,
        notes=body.notes,
        items=_new_items(body.items),
    )
    return OrderOutput.model_validate(order)


@router.get("", response_model=list[OrderOutput])
def list_active_orders(
    order_type: OrderTypeLiteral | None = None,
    actor: Actor = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> list[OrderOutput]:
    return [OrderOutput.model_validate(o) for o in service.list_active_orders(actor, order_type)]


@router.get("/{order_id}", response_model=OrderOutput)
def get_order(
    order_id: int,
    actor: Actor = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderOutput:
    return OrderOutput.model_validate(service.get_order(order_id, actor))


@router.post("/{order_id}/items", response_model=list[OrderItemOutput], status_code=status.HTTP_201_CREATED)
def add_items(
    order_id: int,
    body: AddItemsRequest,
    actor: Actor = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> list[OrderItemOutput]:
    items = service.add_items(order_id, _new_items(body.items), actor)
    return [OrderItemOutput.model_validate(i) for i in items]


@router.post("/{order_id}/items/{item_id}/cancel", response_model=OrderItemOutput)
def cancel_item(
    order_id: int,
    item_id: int,
    body: CancelItemRequest,
    actor: Actor = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderItemOutput:
    item = service.cancel_item(order_id, item_id, actor, reason=body.reason, quantity=body.quantity)
    return OrderItemOutput.model_validate(item)


@router.patch("/{order_id}/items/{item_id}", response_model=OrderItemOutput)
def update_item_quantity(
    order_id: int,
    item_id: int,
    body: UpdateItemQuantityRequest,
    actor: Actor = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderItemOutput:
    """Change the quantity of a line not yet sent to the kitchen."""
    item = service.update_item_quantity(order_id, item_id, body.quantity, actor)
    return OrderItemOutput.model_validate(item)


@router.post("/{order_id}/kot", response_model=list[KotOutput], status_code=status.HTTP_201_CREATED)
def send_kot(
    order_id: int,
    actor: Actor = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> list[KotOutput]:
    """Send every pending item to its kitchen station."""
    return [KotOutput.model_validate(t) for t in service.send_kot(order_id, actor)]


@router.post("/{order_id}/transfer", response_model=OrderOutput)
def transfer_table(
    order_id: int,
    body: TransferTableRequest,
    actor: Actor = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderOutput:
    """Move the order and its table session to a free table."""
    return OrderOutput.model_validate(service.transfer_table(order_id, body.to_table_id, actor))


@router.get("/{order_id}/transfers", response_model=list[OrderTransferOutput])
def list_transfers(
    order_id: int,
    actor: Actor = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> list[OrderTransferOutput]:
    return [OrderTransferOutput.model_validate(t) for t in service.list_transfers(order_id, actor)]


@router.post("/{order_id}/cancel", response_model=OrderOutput)
def cancel_order(
    order_id: int,
    body: CancelOrderRequest,
    actor: Actor = Depends(current_actor),
    service: OrderService = Depends(get_order_service),
) -> OrderOutput:
    return OrderOutput.model_validate(service.cancel_order(order_id, body.reason, actor))


# =============================================================================
# Discounts
# =============================================================================


@router.get("/{order_id}/discounts", response_model=list[DiscountOutput])
def list_discounts(
    order_id: int,
    actor: Actor = Depends(current_actor),
    resolver: DiscountResolver = Depends(get_discount_resolver),
) -> list[DiscountOutput]:
    return [DiscountOutput.model_validate(d) for d in resolver.list_discounts(order_id, actor)]


@router.post("/{order_id}/discount", response_model=DiscountOutput, status_code=status.HTTP_201_CREATED)
def apply_manual_discount(
    order_id: int,
    body: ManualDiscountRequest,
    actor: Actor = Depends(current_actor),
    resolver: DiscountResolver = Depends(get_discount_resolver),
) -> DiscountOutput:
    discount = resolver.apply_manual_discount(
        order_id,
        body.discount_type,
        body.value,
        actor,
        reason=body.reason,
    )
    return DiscountOutput.model_validate(discount)


@router.post("/{order_id}/discount/code", response_model=DiscountOutput, status_code=status.HTTP_201_CREATED)
def apply_discount_code(
    order_id: int,
    body: DiscountCodeRequest,
    actor: Actor = Depends(current_actor),
    resolver: DiscountResolver = Depends(get_discount_resolver),
) -> DiscountOutput:
    return DiscountOutput.model_validate(resolver.apply_discount_code(order_id, body.code, actor))


@router.delete("/{order_id}/discounts/{discount_id}", response_model=DiscountOutput)
def remove_discount(
    order_id: int,
    discount_id: int,
    actor: Actor = Depends(current_actor),
    resolver: DiscountResolver = Depends(get_discount_resolver),
) -> DiscountOutput:
    return DiscountOutput.model_validate(resolver.remove_discount(order_id, discount_id, actor))
