from .base import AppCatalog
from .client import AppStoreClient
