import logging
from typing import Optional

from storefront.auth import AuthService
from storefront.carts import CartStore
from storefront.catalog import ProductCatalog
from storefront.config import DATABASE_URL, JWT_SECRET
from storefront.database import Database
from storefront.seed import seed_products

logger = logging.getLogger(__name__)


class Storefront:
    """Catalog, carts and auth over one shared database."""

    def __init__(self, database: Database, jwt_secret: str = JWT_SECRET):
        self.database = database
        self.catalog = ProductCatalog(database)
        self.carts = CartStore(database)
        self.auth = AuthService(database, secret=jwt_secret)

    @classmethod
    def from_url(cls, url: str = DATABASE_URL, jwt_secret: Optional[str] = None, seed: bool = False) -> "Storefront":
        database = Database(url)
        database.create_all()
        storefront = cls(database, jwt_secret=jwt_secret or JWT_SECRET)
        if seed:
            storefront.seed()
        return storefront

    def seed(self, reset: bool = False) -> int:
        return seed_products(self.database, reset=reset)

    def close(self) -> None:
        self.database.dispose()
