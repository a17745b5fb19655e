from __future__ import annotations

import random
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.utils import timezone

from modules.drivers.models import Driver
from modules.orders.models import Order, OrderItem
from modules.sellers.models import Seller

# Gombe, Kinshasa
CITY_CENTER = (-4.3217, 15.3125)


def _jitter(center: tuple[float, float], spread: float) -> tuple[float, float]:
    return (
        round(center[0] + random.uniform(-spread, spread), 6),
        round(center[1] + random.uniform(-spread, spread), 6),
    )


class Command(BaseCommand):
    help = "Seed database with realistic development data."

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users_created = self._seed_users()
        sellers = self._seed_sellers()
        drivers = self._seed_drivers()
        orders_created = self._seed_orders(sellers)

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={users_created}, "
                f"sellers={len(sellers)}, "
                f"drivers={len(drivers)}, "
                f"orders={orders_created}"
            )
        )

    def _seed_users(self) -> int:
        User = get_user_model()
        created = 0
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser("admin", password="admin123")
            created += 1
        for username in ("seller-app", "driver-app"):
            if not User.objects.filter(username=username).exists():
                User.objects.create_user(username, password=f"{username}-123")
                created += 1
        return created

    def _seed_sellers(self) -> list[Seller]:
        self.stdout.write("Creating sellers...")
        sellers = []
        for name, phone in [
            ("Boutique Matonge", "+243810000001"),
            ("Chez Mama Nzola", "+243810000002"),
            ("Kin Electro", "+243810000003"),
        ]:
            seller, _ = Seller.objects.get_or_create(phone=phone, defaults={"name": name})
            sellers.append(seller)
        self.stdout.write(self.style.SUCCESS("Creating sellers... Done!"))
        return sellers

    def _seed_drivers(self) -> list[Driver]:
        self.stdout.write("Creating drivers...")
        drivers = []
        now = timezone.now()
        for index in range(8):
            latitude, longitude = _jitter(CITY_CENTER, 0.06)
            driver, _ = Driver.objects.get_or_create(
                phone=f"+24382000{index:04d}",
                defaults={
                    "name": f"Livreur {index + 1}",
                    "live_latitude": latitude,
                    "live_longitude": longitude,
                    "is_available": index % 4 != 0,
                    "location_updated_at": now,
                },
            )
            drivers.append(driver)
        self.stdout.write(self.style.SUCCESS("Creating drivers... Done!"))
        return drivers

    def _seed_orders(self, sellers: list[Seller]) -> int:
        self.stdout.write("Creating orders...")
        if Order.objects.exists():
            self.stdout.write(self.style.WARNING("Skipping orders (already seeded)."))
            return 0

        catalog = [
            ("Pagne wax", 25000),
            ("Sac de riz 5 kg", 18000),
            ("Téléphone reconditionné", 120000),
            ("Savon (lot de 6)", 6000),
            ("Chaussures", 45000),
        ]
        orders_created = 0
        for index in range(20):
            latitude, longitude = _jitter(CITY_CENTER, 0.08)
            order = Order.objects.create(
                seller=random.choice(sellers),
                customer_name=f"Client {index + 1}",
                customer_phone=f"+24399{index:07d}",
                delivery_address=f"{index + 1} avenue de la Libération, Kinshasa",
                delivery_latitude=latitude,
                delivery_longitude=longitude,
                courier_fee_paid=index % 3 == 0,
            )
            total = 0
            for name, price in random.sample(catalog, k=random.randint(1, 3)):
                item = OrderItem.objects.create(
                    order=order, name=name, quantity=random.randint(1, 3), unit_price=price
                )
                total += item.subtotal
            created_at = timezone.now() - timedelta(hours=random.randint(0, 72))
            Order.objects.filter(id=order.id).update(total_amount=total, created_at=created_at)
            orders_created += 1

        self.stdout.write(self.style.SUCCESS("Creating orders... Done!"))
        return orders_created
