"""Models package for database models."""

from app.models.photo import Album, Photo
from app.models.order import Order, OrderItem
from app.models.download import PhotoDownload, DownloadAccess

__all__ = [
    "Album",
    "Photo",
    "Order",
    "OrderItem",
    "PhotoDownload",
    "DownloadAccess",
]
