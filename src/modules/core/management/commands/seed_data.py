from __future__ import annotations

import random
from decimal import Decimal

from django.core.management.base import BaseCommand

from modules.catalog.models import Product

CATALOG = [
    ("Monitor 27\"", "Electronics", Decimal("1299.90")),
    ("Mechanical Keyboard", "Electronics", Decimal("399.90")),
    ("Gaming Mouse", "Electronics", Decimal("249.90")),
    ("Notebook 14\"", "Electronics", Decimal("3999.00")),
    ("Headset", "Electronics", Decimal("299.90")),
    ("Office Desk", "Furniture", Decimal("899.00")),
    ("Ergonomic Chair", "Furniture", Decimal("1499.00")),
    ("Bookshelf", "Furniture", Decimal("699.00")),
    ("A4 Paper", "Office", Decimal("29.90")),
    ("Blue Pen", "Office", Decimal("4.90")),
    ("Notebook Stand", "Office", Decimal("149.90")),
    ("Desk Lamp", "Office", Decimal("59.90")),
]


class Command(BaseCommand):
    help = "Seed the catalog with development products."

    def add_arguments(self, parser):
        parser.add_argument(
            "--inactive",
            type=int,
            default=1,
            help="How many of the seeded products to mark as not for sale.",
        )

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Creating products...")

        created = 0
        products: list[Product] = []
        for name, category, price in CATALOG:
            product, was_created = Product.objects.get_or_create(
                name=name,
                defaults={
                    "description": category,
                    "price": price,
                    "stock": random.randint(10, 200),
                    "is_active": True,
                },
            )
            products.append(product)
            created += int(was_created)

        inactive = max(0, min(options["inactive"], len(products)))
        for product in products[len(products) - inactive:]:
            if product.is_active:
                product.is_active = False
                product.save(update_fields=["is_active"])

        self.stdout.write(
            self.style.SUCCESS(
                f"Seed completed: products={len(products)}, created={created}, "
                f"inactive={inactive}"
            )
        )
