from __future__ import annotations

import importlib
import os
import unittest
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from relorm import C, Database, Engine, PostgresDialect
from relorm.core.entity import Entity


def _load_connect() -> Optional[Callable[..., Any]]:
    for module_name in ("psycopg", "psycopg2"):
        try:
            return importlib.import_module(module_name).connect
        except (ImportError, AttributeError):
            continue
    return None


def _env(name: str, libpq_name: str, default: str) -> str:
    return os.getenv(f"RELORM_PG_{name}", os.getenv(libpq_name, default))


POSTGRES_CONNECT = _load_connect()

TABLES = ("relorm_pg_wheels", "relorm_pg_cars", "relorm_pg_owners")
SCHEMA = (
    'CREATE TABLE "relorm_pg_owners" ("id" SERIAL PRIMARY KEY, "name" VARCHAR(100) NOT NULL);',
    'CREATE TABLE "relorm_pg_cars" ('
    '"id" SERIAL PRIMARY KEY, '
    '"owner_id" INTEGER NULL REFERENCES "relorm_pg_owners" ("id"), '
    '"brand" VARCHAR(50) NOT NULL, '
    '"created_at" TIMESTAMP NULL, '
    '"updated_at" TIMESTAMP NULL);',
    'CREATE TABLE "relorm_pg_wheels" ('
    '"id" SERIAL PRIMARY KEY, '
    '"car_id" INTEGER NOT NULL REFERENCES "relorm_pg_cars" ("id"), '
    '"brand" VARCHAR(50) NOT NULL);',
)


@dataclass
class PgOwner(Entity):
    __table__ = "relorm_pg_owners"

    id: Optional[int] = None
    name: str = ""


@dataclass
class PgWheel(Entity):
    __table__ = "relorm_pg_wheels"

    id: Optional[int] = None
    car_id: Optional[int] = None
    brand: str = ""


@dataclass
class PgCar(Entity):
    __table__ = "relorm_pg_cars"

    id: Optional[int] = None
    owner_id: Optional[int] = None
    brand: str = ""
    owner: Optional[PgOwner] = None
    wheels: list[PgWheel] = field(default_factory=list)


@unittest.skipUnless(POSTGRES_CONNECT is not None, "psycopg/psycopg2 is not installed")
class ModelPostgresTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        options = {
            "host": _env("HOST", "PGHOST", "localhost"),
            "port": int(_env("PORT", "PGPORT", "5432")),
            "user": _env("USER", "PGUSER", "postgres"),
            "password": _env("PASSWORD", "PGPASSWORD", os.getenv("POSTGRES_PASSWORD", "password")),
            "dbname": _env("DATABASE", "PGDATABASE", "postgres"),
        }
        try:
            cls.conn = POSTGRES_CONNECT(**options)
        except Exception as exc:
            raise unittest.SkipTest(f"PostgreSQL is not reachable: {exc}") from exc

        cls.db = Database(cls.conn, PostgresDialect())

    @classmethod
    def tearDownClass(cls) -> None:
        conn = getattr(cls, "conn", None)
        if conn is not None:
            conn.close()

    def setUp(self) -> None:
        with self.db.transaction():
            for table in TABLES:
                self.db.execute(f'DROP TABLE IF EXISTS "{table}";')
            for statement in SCHEMA:
                self.db.execute(statement)
        self.engine = Engine(self.db)

    def test_descriptor_from_catalog(self) -> None:
        descriptor = self.engine.descriptor(PgCar)

        self.assertTrue(descriptor.field("id").autoincrement)
        self.assertEqual(
            descriptor.field("id").validate,
            "omitempty,numeric,min=-2147483648,max=2147483647",
        )
        self.assertEqual(descriptor.field("brand").validate, "max=50,required")
        self.assertEqual(descriptor.relation("owner").kind.value, "belongsTo")
        self.assertEqual(descriptor.relation("wheels").kind.value, "hasMany")

    def test_create_and_read_graph(self) -> None:
        car = PgCar(
            brand="BMW",
            owner=PgOwner(name="John Doe"),
            wheels=[PgWheel(brand="Pirelli"), PgWheel(brand="Continental")],
        )
        self.engine.init(car).create()

        self.assertIsNotNone(car.id)
        self.assertEqual(car.owner_id, car.owner.id)

        stored = self.engine.init(PgCar()).first(C.eq("id", car.id))
        self.assertEqual(stored.owner.name, "John Doe")
        self.assertEqual([wheel.brand for wheel in stored.wheels], ["Pirelli", "Continental"])
        self.assertIsNotNone(stored.created_at)

    def test_update_and_delete(self) -> None:
        car = PgCar(brand="Audi", wheels=[PgWheel(brand="Pirelli"), PgWheel(brand="Dunlop")])
        self.engine.init(car).create()

        stored = self.engine.init(PgCar()).first(C.eq("id", car.id))
        stored.brand = "Audi A4"
        stored.wheels = [stored.wheels[0], PgWheel(brand="Michelin")]
        self.engine.init(stored).update()

        reread = self.engine.init(PgCar()).first(C.eq("id", car.id))
        self.assertEqual(reread.brand, "Audi A4")
        self.assertEqual([wheel.brand for wheel in reread.wheels], ["Pirelli", "Michelin"])

        self.engine.init(PgCar(id=car.id)).delete()
        self.assertEqual(self.engine.init(PgCar()).count(), 0)
        self.assertEqual(self.engine.init(PgWheel()).count(), 0)


if __name__ == "__main__":
    unittest.main()
