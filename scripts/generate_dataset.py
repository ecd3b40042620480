"""
Synthetic Bookshop Dataset Generator

Writes one CSV per table in bulk-load order, ready for
``BulkLoader.load_directory``:

    python scripts/generate_dataset.py --orders 5000 --output data/generated
"""

import argparse
import hashlib
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path

import polars as pl
from faker import Faker

fake = Faker()
random.seed(42)
Faker.seed(42)

DEFAULT_OUTPUT_DIR = Path(__file__).parent.parent / "data" / "generated"

CATEGORY_TREE = [
    ("Fiction", "Romans", [("Mystery", "Policier"), ("Science Fiction", "Science-fiction"), ("Fantasy", "Fantaisie")]),
    ("Non-Fiction", "Essais", [("History", "Histoire"), ("Science", "Sciences"), ("Biography", "Biographie")]),
    ("Children", "Jeunesse", [("Picture Books", "Albums"), ("Young Adult", "Adolescents")]),
]


# ==========================================
# CATALOG
# ==========================================
def generate_categories() -> pl.DataFrame:
    rows = []
    next_id = 1
    for name, name_fr, children in CATEGORY_TREE:
        parent_id = next_id
        rows.append({"id": parent_id, "parent_id": None, "name": name, "name_fr": name_fr})
        next_id += 1
        for child, child_fr in children:
            rows.append({"id": next_id, "parent_id": parent_id, "name": child, "name_fr": child_fr})
            next_id += 1
    return pl.DataFrame(rows, schema={"id": pl.Int64, "parent_id": pl.Int64, "name": pl.Utf8, "name_fr": pl.Utf8})


def generate_authors(n: int = 200) -> pl.DataFrame:
    return pl.DataFrame({
        "id": list(range(1, n + 1)),
        "name": [fake.name() for _ in range(n)],
    })


def generate_products(categories: pl.DataFrame, authors: pl.DataFrame, n: int = 2000) -> pl.DataFrame:
    leaf_ids = categories.filter(pl.col("parent_id").is_not_null())["id"].to_list()
    author_ids = authors["id"].to_list()

    rows = []
    for i in range(n):
        price = round(random.uniform(5, 80), 2)
        discount = random.choice([0, 0, 0, 10, 20, 30])
        stock = random.randint(0, 200)
        rows.append({
            "id": f"{978000000 + i:010d}",
            "category_id": random.choice(leaf_ids),
            "author_id": random.choice(author_ids),
            "name": fake.catch_phrase(),
            "name_fr": fake.catch_phrase(),
            "description": fake.sentence(nb_words=12),
            "description_fr": fake.sentence(nb_words=12),
            "long_description": fake.paragraph(nb_sentences=4),
            "long_description_fr": fake.paragraph(nb_sentences=4),
            "price": price,
            "sale_price": round(price * (100 - discount) / 100, 2),
            "discount": discount,
            "shipping_cost": random.choice([0.0, 2.99, 4.99]),
            "on_hand": stock,
            "stock": stock,
        })
    return pl.DataFrame(rows)


# ==========================================
# CUSTOMERS
# ==========================================
def generate_customers(n: int = 1000) -> pl.DataFrame:
    rows = []
    for i in range(1, n + 1):
        rows.append({
            "id": i,
            "first_name": fake.first_name(),
            "last_name": fake.last_name(),
            "email": f"customer{i}@{fake.free_email_domain()}",
            "password_hash": hashlib.sha256(fake.password().encode()).hexdigest(),
        })
    return pl.DataFrame(rows)


# ==========================================
# ORDERS
# ==========================================
def generate_orders(customers: pl.DataFrame, products: pl.DataFrame, n: int = 5000, days: int = 365):
    customer_ids = customers["id"].to_list()
    catalog = products.select("id", "sale_price").to_dicts()
    now = datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0)

    orders, items = [], []
    line_id = 1
    for order_id in range(1, n + 1):
        created_at = now - timedelta(seconds=random.randint(0, days * 86400))
        picked = random.sample(catalog, k=random.randint(1, 4))

        total = 0.0
        for product in picked:
            quantity = random.randint(1, 3)
            items.append({
                "id": line_id,
                "order_id": order_id,
                "product_id": product["id"],
                "quantity": quantity,
                "unit_price": product["sale_price"],
            })
            total += quantity * product["sale_price"]
            line_id += 1

        orders.append({
            "id": order_id,
            "customer_id": random.choice(customer_ids),
            "created_at": created_at.strftime("%Y-%m-%d %H:%M:%S"),
            "total_amount": round(total, 2),
        })

    return pl.DataFrame(orders), pl.DataFrame(items)


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a synthetic bookshop dataset")
    parser.add_argument("--output", type=Path, default=DEFAULT_OUTPUT_DIR)
    parser.add_argument("--customers", type=int, default=1000)
    parser.add_argument("--products", type=int, default=2000)
    parser.add_argument("--orders", type=int, default=5000)
    args = parser.parse_args()

    args.output.mkdir(parents=True, exist_ok=True)

    categories = generate_categories()
    authors = generate_authors()
    products = generate_products(categories, authors, args.products)
    customers = generate_customers(args.customers)
    orders, line_items = generate_orders(customers, products, args.orders)

    for table, df in [
        ("categories", categories),
        ("authors", authors),
        ("products", products),
        ("customers", customers),
        ("orders", orders),
        ("order_line_items", line_items),
    ]:
        df.write_csv(args.output / f"{table}.csv")
        print(f"   {table}.csv: {len(df):,} rows")


if __name__ == "__main__":
    main()
