import unittest

from wms import create_app
from wms.actor import Actor, ROLE_ADMIN, ROLE_USER
from wms.config import TestingConfig
from wms.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from wms.extensions import db
from wms.models import LogEntry, Product, StockUnit
from wms.services import product_service


class ProductServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app(TestingConfig)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(LogEntry).delete()
        db.session.query(StockUnit).delete()
        db.session.query(Product).delete()
        db.session.commit()

        self.admin = Actor(username="admin", role=ROLE_ADMIN)
        self.user = Actor(username="gudang", role=ROLE_USER)

    def test_product_prefix(self):
        self.assertEqual(product_service.product_prefix("Packaging", "I"), "PMI")
        self.assertEqual(product_service.product_prefix("Ingredients", "E"), "IME")
        self.assertEqual(product_service.product_prefix("Chemical", "I"), "CMI")
        self.assertEqual(product_service.product_prefix("Stationery", "E"), "OME")
        with self.assertRaises(ValidationError):
            product_service.product_prefix("Packaging", "X")

    def test_next_product_id_follows_highest_code(self):
        self.assertEqual(product_service.next_product_id("Packaging"), "PMI001")
        product_service.create_product(name="Box", category="Packaging")
        product_service.create_product(name="Tape", category="Packaging", product_id="PMI009")
        product_service.create_product(name="Glove", category="Packaging", origin="E")

        self.assertEqual(product_service.next_product_id("Packaging"), "PMI010")
        self.assertEqual(product_service.next_product_id("Packaging", "E"), "PME002")

    def test_create_product_sets_cache_from_initial_stock(self):
        product = product_service.create_product(name="  Sugar ", category="Ingredients", unit="Kg", initial_stock=25)

        self.assertEqual(product.id, "IMI001")
        self.assertEqual(product.name, "Sugar")
        self.assertEqual(product.stock_today, 25)

    def test_create_product_rejects_duplicates_and_bad_input(self):
        product_service.create_product(name="Sugar", product_id="X1")
        with self.assertRaises(ConflictError):
            product_service.create_product(name="Salt", product_id="x1")
        with self.assertRaises(ValidationError):
            product_service.create_product(name=" ")
        with self.assertRaises(ValidationError):
            product_service.create_product(name="Salt", safety_stock=-1)

    def test_update_initial_stock_rebuilds_cache(self):
        product_service.create_product(name="Sugar", product_id="X1", initial_stock=5)

        product = product_service.update_product("X1", initial_stock=12, safety_stock=3)

        self.assertEqual(product.initial_stock, 12)
        self.assertEqual(product.stock_today, 12)
        self.assertEqual(product.safety_stock, 3)
        with self.assertRaises(ValidationError):
            product_service.update_product("X1", stock_today=99)
        with self.assertRaises(NotFoundError):
            product_service.update_product("NOPE", name="x")

    def test_delete_requires_admin(self):
        product_service.create_product(name="Sugar", product_id="X1")

        with self.assertRaises(PermissionDeniedError):
            product_service.delete_product("X1", self.user)
        product_service.delete_product("X1", self.admin)

        self.assertIsNone(db.session.get(Product, "X1"))

    def test_list_products_natural_order_and_search(self):
        for pid, name in (("PMI10", "Tape"), ("PMI2", "Box"), ("PMI1", "Bubble Wrap")):
            product_service.create_product(name=name, product_id=pid)

        self.assertEqual([p.id for p in product_service.list_products()], ["PMI1", "PMI2", "PMI10"])
        self.assertEqual([p.id for p in product_service.list_products("b")], ["PMI1", "PMI2"])


if __name__ == "__main__":
    unittest.main()
