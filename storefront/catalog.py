import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from pydantic import field_validator, model_validator
from sqlalchemy import func, or_, select

from storefront.database import Database
from storefront.errors import NotFound, ValidationError
from storefront.models import Product, utcnow
from storefront.schemas import ProductOut, ProductUpdate

logger = logging.getLogger(__name__)

MAX_LIMIT = 100

# symptom words customers type, mapped to catalog vocabulary
SYMPTOM_TERMS: Dict[str, List[str]] = {
    "dor": ["analgésico", "dipirona", "paracetamol", "ibuprofeno"],
    "pain": ["analgésico", "dipirona", "paracetamol", "ibuprofeno"],
    "headache": ["analgésico", "dipirona", "paracetamol"],
    "febre": ["antitérmico", "dipirona", "paracetamol"],
    "fever": ["antitérmico", "dipirona", "paracetamol"],
    "inflamação": ["anti-inflamatório", "ibuprofeno", "nimesulida"],
    "inflammation": ["anti-inflamatório", "ibuprofeno", "nimesulida"],
    "gripe": ["antitérmico", "vitamina c", "loratadina"],
    "flu": ["antitérmico", "vitamina c", "loratadina"],
    "resfriado": ["antitérmico", "vitamina c", "soro"],
    "cold": ["antitérmico", "vitamina c", "soro"],
    "tosse": ["antitussígeno", "mucolítico", "dextrometorfano"],
    "cough": ["antitussígeno", "mucolítico", "dextrometorfano"],
    "alergia": ["anti-histamínico", "loratadina"],
    "allergy": ["anti-histamínico", "loratadina"],
    "azia": ["omeprazol", "ranitidina"],
    "heartburn": ["omeprazol", "ranitidina"],
    "gases": ["simeticona", "antiflatulento"],
    "gas": ["simeticona", "antiflatulento"],
    "pressão": ["anti-hipertensivo", "aparelho de pressão"],
    "blood pressure": ["anti-hipertensivo", "aparelho de pressão"],
    "diabetes": ["metformina", "glicemia"],
    "pele": ["hidratante", "protetor solar"],
    "skin": ["hidratante", "protetor solar"],
    "sol": ["protetor solar"],
    "sun": ["protetor solar"],
    "imunidade": ["vitamina c", "vitamina d"],
    "immunity": ["vitamina c", "vitamina d"],
}


class ProductFilter(BaseModel):
    """Typed product query. Built and validated before it reaches the database."""

    model_config = ConfigDict(extra="forbid")

    term: Optional[str] = Field(None, max_length=200)
    category: Optional[str] = Field(None, max_length=100)
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    limit: Optional[int] = Field(None, ge=1)

    @field_validator("term", "category")
    @classmethod
    def _blank_is_unset(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @field_validator("limit")
    @classmethod
    def _cap_limit(cls, value: Optional[int]) -> Optional[int]:
        # limit only truncates; oversized values are capped, not rejected
        return None if value is None else min(value, MAX_LIMIT)

    @model_validator(mode="after")
    def _check_price_range(self):
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("minPrice cannot be greater than maxPrice")
        return self

    @classmethod
    def build(cls, **fields: Any) -> "ProductFilter":
        """Construct a filter, converting validation failures into a 400."""
        try:
            return cls(**fields)
        except PydanticValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'filter'}: {error['msg']}"
                for error in e.errors()
            )
            raise ValidationError(f"Invalid product filter: {details}") from e

    def clauses(self) -> list:
        clauses = []
        if self.term:
            needle = self.term.lower()
            clauses.append(
                or_(
                    func.lower(Product.name).contains(needle, autoescape=True),
                    func.lower(Product.description).contains(needle, autoescape=True),
                    func.lower(Product.manufacturer).contains(needle, autoescape=True),
                )
            )
        if self.category:
            clauses.append(func.lower(Product.category) == self.category.lower())
        if self.min_price is not None:
            clauses.append(Product.price >= self.min_price)
        if self.max_price is not None:
            clauses.append(Product.price <= self.max_price)
        return clauses


def relevance_score(product: ProductOut, query: str) -> int:
    """Score a product against a free-text query; higher is better."""
    query = query.lower().strip()
    name = product.name.lower()
    score = 0
    if name == query:
        score += 100
    elif name.startswith(query):
        score += 80
    elif query in name:
        score += 60
    if query in product.description.lower():
        score += 30
    if query in product.manufacturer.lower():
        score += 20
    for word in query.split():
        if len(word) >= 3 and word in name:
            score += 10
    return score


def symptom_terms(query: str) -> List[str]:
    query = query.lower()
    terms: List[str] = []
    for symptom, related in SYMPTOM_TERMS.items():
        if symptom in query:
            terms.extend(term for term in related if term not in terms)
    return terms


class ProductCatalog:
    def __init__(self, database: Database):
        self.database = database

    def search(self, product_filter: Optional[ProductFilter] = None) -> List[ProductOut]:
        product_filter = product_filter or ProductFilter()
        statement = (
            select(Product)
            .where(*product_filter.clauses())
            .order_by(Product.category.asc(), Product.name.asc())
        )
        if product_filter.limit:
            statement = statement.limit(product_filter.limit)
        with self.database.session() as session:
            products = session.scalars(statement).all()
            return [ProductOut.model_validate(p) for p in products]

    def rank(self, query: str, category: Optional[str] = None, limit: int = 15) -> List[ProductOut]:
        """Relevance-ranked search, widening to symptom vocabulary when nothing matches."""
        found = self.search(ProductFilter.build(term=query, category=category))
        if not found:
            seen = set()
            for term in symptom_terms(query):
                for product in self.search(ProductFilter.build(term=term, category=category)):
                    if product.id not in seen:
                        seen.add(product.id)
                        found.append(product)
            if found:
                logger.info(f"No direct match for '{query}', matched {len(found)} products by symptom")
                return found[:limit]
        found.sort(key=lambda p: relevance_score(p, query), reverse=True)
        return found[:limit]

    def find(self, product_id: str) -> Optional[ProductOut]:
        with self.database.session() as session:
            product = session.get(Product, product_id)
            return ProductOut.model_validate(product) if product else None

    def get(self, product_id: str) -> ProductOut:
        product = self.find(product_id)
        if product is None:
            raise NotFound("Product not found")
        return product

    def resolve(self, identifier: str) -> Optional[ProductOut]:
        """Find a product by id or by (partial) name as a customer would type it."""
        identifier = (identifier or "").strip()
        if not identifier:
            return None
        product = self.find(identifier)
        if product:
            return product
        needle = identifier.lower()
        with self.database.session() as session:
            match = session.scalars(
                select(Product)
                .where(func.lower(Product.name).contains(needle, autoescape=True))
                .order_by(func.length(Product.name), Product.name)
                .limit(1)
            ).first()
            if match is None:
                # "I want dipirona 500mg please" contains the product name
                candidates = session.scalars(select(Product).order_by(Product.name)).all()
                match = next((p for p in candidates if p.name.lower() in needle), None)
            return ProductOut.model_validate(match) if match else None

    def update(self, product_id: str, changes: ProductUpdate) -> ProductOut:
        values = changes.model_dump(exclude_unset=True, exclude_none=True)
        with self.database.session() as session:
            product = session.get(Product, product_id)
            if product is None:
                raise NotFound("Product not found")
            for field, value in values.items():
                setattr(product, field, value)
            product.updated_at = utcnow()
            session.flush()
            logger.info(f"Updated product {product_id}: {sorted(values)}")
            return ProductOut.model_validate(product)

    def categories(self) -> List[str]:
        with self.database.session() as session:
            return list(session.scalars(select(Product.category).distinct().order_by(Product.category)))

    def category_counts(self) -> Dict[str, int]:
        with self.database.session() as session:
            rows = session.execute(
                select(Product.category, func.count(Product.id))
                .group_by(Product.category)
                .order_by(Product.category)
            ).all()
            return {category: count for category, count in rows}

    def count(self) -> int:
        with self.database.session() as session:
            return session.scalar(select(func.count(Product.id))) or 0
