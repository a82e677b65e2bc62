from cardapio.models.establishment import Establishment
from cardapio.models.product_category import ProductCategory
from cardapio.models.product import Product
from cardapio.models.ingredient import Ingredient, ProductIngredient
from cardapio.models.customer import Customer
from cardapio.models.coupon import Coupon, CouponRedemption
from cardapio.models.loyalty import LoyaltyAccount, LoyaltyTransaction
from cardapio.models.order import Order
from cardapio.models.order_item import OrderItem
from cardapio.models.order_event import OrderEvent
