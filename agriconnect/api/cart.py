from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from agriconnect.dependencies import get_seller_user
from agriconnect.errors import bad_request, not_found
from agriconnect.models import Cart, CartItem, Product, User, get_db
from agriconnect.models.enums import ProductStatus
from agriconnect.schemas.cart import CartItemAddRequest, CartItemResponse, CartItemUpdateRequest, CartResponse
from agriconnect.schemas.products import ProductResponse

router = APIRouter()


def get_or_create_cart(db: Session, user: User) -> Cart:
    cart = db.query(Cart).filter(Cart.user_id == user.id).first()
    if cart is None:
        cart = Cart(user_id=user.id)
        db.add(cart)
        db.flush()
    return cart


def _check_quantity(product: Product, quantity: int) -> None:
    if product.status != ProductStatus.ACTIVE.value:
        raise bad_request("Product is not available")
    if quantity < product.minimum_order_quantity:
        raise bad_request(
            f"Minimum order quantity for {product.name} is {product.minimum_order_quantity} {product.unit}"
        )
    if quantity > product.quantity_available:
        raise bad_request(f"Only {product.quantity_available} {product.unit} of {product.name} available")


def _cart_response(cart: Cart) -> CartResponse:
    items = []
    subtotal = Decimal("0")
    for item in cart.items:
        line_total = Decimal(item.product.unit_price) * item.quantity
        subtotal += line_total
        items.append(
            CartItemResponse(
                id=item.id,
                product_id=item.product_id,
                quantity=item.quantity,
                line_total=line_total,
                product=ProductResponse.model_validate(item.product),
            )
        )
    return CartResponse(
        id=cart.id,
        items=items,
        total_items=sum(item.quantity for item in cart.items),
        subtotal=subtotal,
    )


def _get_own_item(db: Session, cart: Cart, item_id: int) -> CartItem:
    item = db.query(CartItem).filter(CartItem.id == item_id, CartItem.cart_id == cart.id).first()
    if not item:
        raise not_found("Cart item not found")
    return item


@router.get(
    "",
    response_model=CartResponse,
    summary="Get my cart",
)
def get_cart(
    current_user: Annotated[User, Depends(get_seller_user)],
    db: Annotated[Session, Depends(get_db)],
):
    cart = get_or_create_cart(db, current_user)
    db.commit()
    db.refresh(cart)
    return _cart_response(cart)


@router.post(
    "/items",
    response_model=CartResponse,
    summary="Add a product to my cart",
)
def add_item(
    body: CartItemAddRequest,
    current_user: Annotated[User, Depends(get_seller_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Adding a product already in the cart increases its quantity."""
    product = db.query(Product).filter(Product.id == body.product_id).first()
    if not product:
        raise not_found("Product not found")

    cart = get_or_create_cart(db, current_user)
    item = db.query(CartItem).filter(CartItem.cart_id == cart.id, CartItem.product_id == product.id).first()
    new_quantity = body.quantity + (item.quantity if item else 0)
    _check_quantity(product, new_quantity)

    if item:
        item.quantity = new_quantity
    else:
        db.add(CartItem(cart_id=cart.id, product_id=product.id, quantity=new_quantity))
    db.commit()
    db.refresh(cart)
    return _cart_response(cart)


@router.put(
    "/items/{item_id}",
    response_model=CartResponse,
    summary="Set the quantity of a cart item",
)
def update_item(
    item_id: int,
    body: CartItemUpdateRequest,
    current_user: Annotated[User, Depends(get_seller_user)],
    db: Annotated[Session, Depends(get_db)],
):
    cart = get_or_create_cart(db, current_user)
    item = _get_own_item(db, cart, item_id)
    _check_quantity(item.product, body.quantity)
    item.quantity = body.quantity
    db.commit()
    db.refresh(cart)
    return _cart_response(cart)


@router.delete(
    "/items/{item_id}",
    response_model=CartResponse,
    summary="Remove an item from my cart",
)
def remove_item(
    item_id: int,
    current_user: Annotated[User, Depends(get_seller_user)],
    db: Annotated[Session, Depends(get_db)],
):
    cart = get_or_create_cart(db, current_user)
    item = _get_own_item(db, cart, item_id)
    db.delete(item)
    db.commit()
    db.refresh(cart)
    return _cart_response(cart)


@router.delete(
    "",
    response_model=CartResponse,
    summary="Remove every item from my cart",
)
def clear_cart(
    current_user: Annotated[User, Depends(get_seller_user)],
    db: Annotated[Session, Depends(get_db)],
):
    cart = get_or_create_cart(db, current_user)
    db.query(CartItem).filter(CartItem.cart_id == cart.id).delete(synchronize_session=False)
    db.commit()
    db.refresh(cart)
    return _cart_response(cart)
