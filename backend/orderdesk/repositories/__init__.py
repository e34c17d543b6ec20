"""
Repository package for data access layer.
"""
from orderdesk.repositories.base import BaseRepository
from orderdesk.repositories.customer import CustomerRepository
from orderdesk.repositories.offer import OfferRepository
from orderdesk.repositories.order import OrderRepository
from orderdesk.repositories.store_setting import StoreSettingRepository

__all__ = [
    "BaseRepository",
    "CustomerRepository",
    "OfferRepository",
    "OrderRepository",
    "StoreSettingRepository",
]
