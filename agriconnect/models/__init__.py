from agriconnect.models.database import Base, get_db
from agriconnect.models.user import FarmerProfile, Profile, SellerProfile, User
from agriconnect.models.product import Category, Product
from agriconnect.models.cart import Cart, CartItem
from agriconnect.models.order import Order, OrderItem
from agriconnect.models.review import Review
from agriconnect.models.notification import Notification
from agriconnect.models.chat import ChatMessage, ChatSession
from agriconnect.models.saved_product import NewsletterSubscription, SavedProduct
from agriconnect.models.auth_token import OneTimeToken, RefreshToken

__all__ = [
    "Base",
    "get_db",
    "User",
    "Profile",
    "FarmerProfile",
    "SellerProfile",
    "Category",
    "Product",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "Review",
    "Notification",
    "ChatSession",
    "ChatMessage",
    "SavedProduct",
    "NewsletterSubscription",
    "OneTimeToken",
    "RefreshToken",
]
