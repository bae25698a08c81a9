from storefront.schemas import ProductOut
from storefront.services import Storefront

TEST_SECRET = "test-secret"


def make_storefront(seed: bool = True) -> Storefront:
    """Fresh in-memory database, optionally loaded with the pharmacy catalog."""
    storefront = Storefront.from_url("sqlite://", jwt_secret=TEST_SECRET)
    if seed:
        storefront.seed()
    return storefront


def product_named(storefront: Storefront, name: str) -> ProductOut:
    return next(p for p in storefront.catalog.search() if p.name == name)
