#import all models so SQLAlchemy registers them in Base.metadata

from marketplace.data.models.owner import OwnerModel
from marketplace.data.models.customer import CustomerModel, Role
from marketplace.data.models.product import ProductModel, ProductVariantModel
from marketplace.data.models.cart import CartModel
from marketplace.data.models.cart_item import CartItemModel
from marketplace.data.models.checkout_session import CheckoutSessionModel, SessionStatus
from marketplace.data.models.order import OrderModel, OrderStatus
from marketplace.data.models.line_item import LineItemModel
from marketplace.data.models.shipping_config import OwnerAreaModel, OwnerShippingConfigModel

__all__ = [
    "OwnerModel",
    "CustomerModel",
    "Role",
    "ProductModel",
    "ProductVariantModel",
    "CartModel",
    "CartItemModel",
    "CheckoutSessionModel",
    "SessionStatus",
    "OrderModel",
    "OrderStatus",
    "LineItemModel",
    "OwnerShippingConfigModel",
    "OwnerAreaModel",
]
