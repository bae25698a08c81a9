"""Pharmacy catalog seed data.

Run ``python -m storefront.seed --reset`` to wipe the catalog and reload it.
"""
import argparse
import logging

from sqlalchemy import delete, func, select

from storefront.config import DATABASE_URL
from storefront.database import Database
from storefront.models import Cart, CartItem, Product

logger = logging.getLogger(__name__)

# (name, description, category, price, stock, prescription, manufacturer)
PRODUCTS = [
    ("Dipirona 500mg", "Analgésico e antitérmico para dores e febre", "Analgésicos", 8.50, 150, False, "EMS"),
    ("Ibuprofeno 600mg", "Anti-inflamatório não esteroidal", "Anti-inflamatórios", 12.90, 80, False, "Medley"),
    ("Paracetamol 750mg", "Analgésico e antitérmico", "Analgésicos", 6.80, 200, False, "Eurofarma"),
    ("Diclofenaco Sódico 50mg", "Anti-inflamatório para dores musculares", "Anti-inflamatórios", 15.40, 60, False, "Voltaren"),
    ("Nimesulida 100mg", "Anti-inflamatório e analgésico", "Anti-inflamatórios", 18.70, 45, False, "Apsen"),
    ("Amoxicilina 500mg", "Antibiótico de amplo espectro", "Antibióticos", 25.90, 40, True, "Neo Química"),
    ("Azitromicina 500mg", "Antibiótico para infecções respiratórias", "Antibióticos", 32.50, 35, True, "Sandoz"),
    ("Cefalexina 500mg", "Antibiótico cefalosporínico", "Antibióticos", 28.90, 30, True, "Cimed"),
    ("Ciprofloxacino 500mg", "Antibiótico quinolona", "Antibióticos", 35.80, 25, True, "Eurofarma"),
    ("Vitamina C 1g", "Suplemento vitamínico efervescente", "Vitaminas", 22.90, 100, False, "Redoxon"),
    ("Complexo B", "Vitaminas do complexo B", "Vitaminas", 18.50, 75, False, "Centrum"),
    ("Vitamina D3 2000UI", "Suplemento de vitamina D", "Vitaminas", 35.90, 60, False, "Addera"),
    ("Ômega 3 1000mg", "Suplemento de ácidos graxos", "Suplementos", 45.90, 50, False, "Vitafor"),
    ("Ferro Quelato", "Suplemento de ferro", "Suplementos", 28.90, 40, False, "Noripurum"),
    ("Losartana 50mg", "Anti-hipertensivo", "Cardiovascular", 15.90, 80, True, "EMS"),
    ("Enalapril 10mg", "Inibidor da ECA", "Cardiovascular", 12.50, 90, True, "Medley"),
    ("Amlodipina 5mg", "Bloqueador de canal de cálcio", "Cardiovascular", 18.90, 70, True, "Eurofarma"),
    ("Hidroclorotiazida 25mg", "Diurético tiazídico", "Cardiovascular", 8.90, 100, True, "Neo Química"),
    ("Metformina 850mg", "Antidiabético oral", "Diabetes", 22.90, 60, True, "Glifage"),
    ("Glibenclamida 5mg", "Hipoglicemiante oral", "Diabetes", 16.50, 45, True, "EMS"),
    ("Omeprazol 20mg", "Inibidor da bomba de prótons", "Digestivo", 25.90, 85, False, "Eurofarma"),
    ("Ranitidina 150mg", "Bloqueador H2", "Digestivo", 18.50, 70, False, "Label"),
    ("Domperidona 10mg", "Procinético digestivo", "Digestivo", 22.90, 55, False, "Motilium"),
    ("Simeticona 40mg", "Antiflatulento", "Digestivo", 12.90, 90, False, "Luftal"),
    ("Salbutamol 100mcg", "Broncodilatador spray", "Respiratório", 35.90, 30, True, "Aerolin"),
    ("Loratadina 10mg", "Anti-histamínico", "Respiratório", 15.90, 80, False, "Claritin"),
    ("Dextrometorfano 15mg", "Antitussígeno", "Respiratório", 18.50, 65, False, "Bisolvon"),
    ("Carbocisteína 250mg", "Mucolítico", "Respiratório", 24.90, 50, False, "Fluimucil"),
    ("Rivotril 2mg", "Ansiolítico benzodiazepínico", "Neurológico", 45.90, 20, True, "Roche"),
    ("Fluoxetina 20mg", "Antidepressivo ISRS", "Neurológico", 32.90, 35, True, "Prozac"),
    ("Sertralina 50mg", "Antidepressivo ISRS", "Neurológico", 38.50, 30, True, "Zoloft"),
    ("Protetor Solar FPS 60", "Proteção solar facial", "Dermocosmético", 55.90, 40, False, "La Roche-Posay"),
    ("Hidratante Facial", "Creme hidratante para rosto", "Dermocosmético", 42.90, 35, False, "Vichy"),
    ("Shampoo Anticaspa", "Tratamento para caspa", "Dermocosmético", 28.90, 50, False, "Selsun"),
    ("Álcool Gel 70%", "Higienizador de mãos", "Higiene", 8.90, 200, False, "Antisséptico"),
    ("Termômetro Digital", "Medidor de temperatura corporal", "Equipamentos", 25.90, 25, False, "G-Tech"),
    ("Aparelho de Pressão", "Monitor de pressão arterial", "Equipamentos", 89.90, 15, False, "Omron"),
    ("Fita Teste Glicemia", "Tiras para medição de glicose", "Equipamentos", 45.90, 30, False, "Accu-Chek"),
    ("Anticoncepcional Yasmin", "Contraceptivo oral combinado", "Ginecológico", 35.90, 40, True, "Bayer"),
    ("Ácido Fólico 5mg", "Suplemento para gestantes", "Ginecológico", 18.90, 60, False, "Folifolim"),
    ("Paracetamol Gotas", "Analgésico infantil", "Pediátrico", 12.90, 80, False, "Tylenol"),
    ("Soro Fisiológico", "Solução para higiene nasal", "Pediátrico", 8.50, 100, False, "Rinosoro"),
    ("Probiótico Infantil", "Regulador da flora intestinal", "Pediátrico", 32.90, 45, False, "Floratil"),
]


def seed_products(database: Database, reset: bool = False) -> int:
    """Insert the catalog. Without ``reset`` this only touches an empty products table.

    Returns the number of products inserted.
    """
    with database.session() as session:
        if reset:
            session.execute(delete(CartItem))
            session.execute(delete(Cart).where(Cart.user_id.is_(None)))
            session.execute(delete(Product))
            logger.info("Cleared existing catalog")
        elif session.scalar(select(func.count(Product.id))):
            return 0

        for name, description, category, price, stock, prescription, manufacturer in PRODUCTS:
            session.add(
                Product(
                    name=name,
                    description=description,
                    category=category,
                    price=price,
                    stock=stock,
                    prescription=prescription,
                    manufacturer=manufacturer,
                )
            )
    logger.info(f"Seeded {len(PRODUCTS)} products")
    return len(PRODUCTS)


def main():
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Load the pharmacy catalog")
    parser.add_argument("--database-url", default=DATABASE_URL)
    parser.add_argument("--reset", action="store_true", help="delete existing products first")
    args = parser.parse_args()

    database = Database(args.database_url)
    database.create_all()
    inserted = seed_products(database, reset=args.reset)
    if not inserted:
        logger.info("Catalog already populated, nothing to do (use --reset to reload)")


if __name__ == "__main__":
    main()
