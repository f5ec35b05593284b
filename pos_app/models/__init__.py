"""Models package - exports all SQLAlchemy models."""
from pos_app.models.app_user import AppUser, UserRole

# Catalog
from pos_app.models.product import Product
from pos_app.models.product_stock import ProductStock
from pos_app.models.promotion import Promotion, PromotionType
from pos_app.models.product_promotion import ProductPromotion

# Sales
from pos_app.models.sale import Sale, PaymentMethod
from pos_app.models.sale_line import SaleLine

__all__ = [
    'AppUser', 'UserRole',
    'Product', 'ProductStock', 'Promotion', 'PromotionType', 'ProductPromotion',
    'Sale', 'PaymentMethod', 'SaleLine',
]
