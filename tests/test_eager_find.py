from __future__ import annotations

import unittest
from dataclasses import dataclass, field
from typing import Optional

from structlog.testing import capture_logs

from relorm.core.conditions import C
from relorm.core.entity import Entity
from relorm.core.errors import InfinityLoop, NotInitialized, ResultMustBeList, RowNotFound
from tests._car_fixtures import (
    Author,
    Car,
    Driver,
    Liquid,
    Owner,
    Person,
    Radio,
    User,
    Wheel,
    car_engine,
    library_engine,
)


@dataclass
class AuditedOwner(Entity):
    __table__ = "owners"

    id: Optional[int] = None
    name: str = ""
    found: int = field(default=0, metadata={"orm": "-"})

    def after_find(self) -> None:
        self.found += 1


class CarFindTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine, self.db = car_engine()

    def tearDown(self) -> None:
        self.db.close()

    def test_first_loads_every_relation(self) -> None:
        car = Car()
        model = self.engine.init(car)
        self.db.reset()

        loaded = model.first(C.eq("id", 1))

        self.assertIs(loaded, car)
        self.assertEqual(
            car,
            Car(
                id=1,
                owner_id=1,
                brand="BMW",
                owner=Owner(id=1, name="John Doe"),
                wheels=[
                    Wheel(id=1, car_id=1, brand="Pirelli"),
                    Wheel(id=2, car_id=1, brand="Continental"),
                ],
                drivers=[Driver(id=1, name="Ada"), Driver(id=2, name="Ben")],
                radio=Radio(id=1, car_id=1, car_type="radio", brand="AEG"),
                liquid=Liquid(id=2, car_id=1, car_type="liquid", brand="Molly"),
            ),
        )
        for table in ("cars", "owners", "wheels", "drivers"):
            with self.subTest(table=table):
                self.assertEqual(len(self.db.touching(table)), 1)
        self.assertEqual(len(self.db.touching("components")), 2)
        self.assertEqual(self.db.writes(), [])

    def test_polymorphic_relations_filter_on_type(self) -> None:
        car = self.engine.init(Car()).first(C.eq("id", 2))

        self.assertEqual(car.radio, Radio(id=3, car_id=2, car_type="radio", brand="Sony"))
        self.assertIsNone(car.liquid)
        self.assertEqual(car.wheels, [Wheel(id=3, car_id=2, brand="Pirelli")])
        self.assertEqual(car.drivers, [Driver(id=3, name="Cleo")])

    def test_missing_relations_fall_back_to_zero_values(self) -> None:
        car = self.engine.init(Car()).first(C.eq("id", 3))

        self.assertEqual(car.owner, Owner(id=2, name="Mary Major"))
        self.assertEqual(car.wheels, [])
        self.assertEqual(car.drivers, [])
        self.assertIsNone(car.radio)
        self.assertIsNone(car.liquid)

    def test_all_batches_relation_queries(self) -> None:
        model = self.engine.init(Car())
        self.db.reset()

        cars = model.all()

        self.assertEqual([car.brand for car in cars], ["BMW", "Audi", "Fiat"])
        self.assertEqual([car.owner.name for car in cars], ["John Doe", "John Doe", "Mary Major"])
        self.assertEqual(
            [[wheel.id for wheel in car.wheels] for car in cars], [[1, 2], [3], []]
        )
        self.assertEqual(
            [[driver.name for driver in car.drivers] for car in cars],
            [["Ada", "Ben"], ["Cleo"], []],
        )
        self.assertEqual(
            [car.radio.brand if car.radio else None for car in cars], ["AEG", "Sony", None]
        )
        self.assertEqual(
            [car.liquid.brand if car.liquid else None for car in cars], ["Molly", None, None]
        )
        for table in ("cars", "owners", "wheels", "car_drivers", "drivers"):
            with self.subTest(table=table):
                self.assertEqual(len(self.db.touching(table)), 1)

    def test_all_appends_to_given_result(self) -> None:
        result = [Car(brand="placeholder")]
        returned = self.engine.init(Car()).all(C.eq("owner_id", 2), result)

        self.assertIs(returned, result)
        self.assertEqual([car.brand for car in result], ["placeholder", "Fiat"])

    def test_whitelisted_path_limits_columns_and_relations(self) -> None:
        car = Car()
        self.engine.model(car).set_whitelist("owner.name").init().first(C.eq("id", 1))

        self.assertEqual(car.brand, "")
        self.assertEqual(car.id, 1)
        self.assertEqual(car.owner_id, 1)
        self.assertEqual(car.owner, Owner(id=1, name="John Doe"))
        self.assertEqual(car.wheels, [])
        self.assertEqual(car.drivers, [])
        self.assertIsNone(car.radio)

    def test_blacklisted_relation_is_not_loaded(self) -> None:
        car = Car()
        model = self.engine.model(car).set_blacklist("wheels", "drivers").init()
        self.db.reset()

        model.first(C.eq("id", 1))

        self.assertEqual(car.brand, "BMW")
        self.assertEqual(car.wheels, [])
        self.assertEqual(self.db.touching("wheels"), [])
        self.assertEqual(self.db.touching("drivers"), [])

    def test_relation_condition_replaces_default(self) -> None:
        model = self.engine.init(Car()).set_relation_condition(
            "wheels", [C.eq("car_id", 1), C.eq("brand", "Continental")]
        )
        car = model.first(C.eq("id", 1))
        self.assertEqual(car.wheels, [Wheel(id=2, car_id=1, brand="Continental")])

        cars = (
            self.engine.init(Car())
            .set_relation_condition("wheels", C.eq("brand", "Pirelli"))
            .all()
        )
        self.assertEqual([[wheel.id for wheel in car.wheels] for car in cars], [[1], [3], []])

    def test_row_not_found(self) -> None:
        with self.assertRaises(RowNotFound):
            self.engine.init(Car()).first(C.eq("id", 99))

    def test_count(self) -> None:
        model = self.engine.init(Car())
        self.assertEqual(model.count(), 3)
        self.assertEqual(model.count(C.eq("owner_id", 1)), 2)

    def test_result_must_be_list(self) -> None:
        with self.assertRaises(ResultMustBeList):
            self.engine.init(Car()).all(None, ())

    def test_operations_require_init(self) -> None:
        model = self.engine.model(Car())
        for operation in (model.first, model.all, model.count):
            with self.subTest(operation=operation.__name__):
                with self.assertRaises(NotInitialized):
                    operation()

    def test_model_rejects_non_entities(self) -> None:
        with self.assertRaises(TypeError):
            self.engine.model(Car)
        with self.assertRaises(TypeError):
            self.engine.model({"id": 1})

    def test_after_find_runs_per_loaded_entity(self) -> None:
        owner = self.engine.init(AuditedOwner()).first(C.eq("id", 1))
        self.assertEqual(owner.found, 1)

        owners = self.engine.init(AuditedOwner()).all()
        self.assertEqual([item.found for item in owners], [1, 1])


PEOPLE = (
    "INSERT INTO \"persons\" (\"id\", \"name\") VALUES (1, 'Ann');",
    "INSERT INTO \"passports\" (\"id\", \"person_id\", \"number\") VALUES (1, 1, 'X-1');",
    "INSERT INTO \"authors\" (\"id\", \"name\") VALUES (1, 'Le Guin');",
    "INSERT INTO \"books\" (\"id\", \"author_id\", \"title\") VALUES "
    "(1, 1, 'The Dispossessed'), (2, 1, 'The Lathe of Heaven');",
    "INSERT INTO \"users\" (\"id\", \"name\") VALUES (1, 'Ann'), (2, 'Bob'), (3, 'Cleo');",
)


class BackReferenceTests(unittest.TestCase):
    def test_has_one_points_back_at_owner(self) -> None:
        engine, db = library_engine(*PEOPLE)
        self.addCleanup(db.close)

        person = engine.init(Person()).first(C.eq("id", 1))

        self.assertEqual(person.passport.number, "X-1")
        self.assertIs(person.passport.person, person)
        self.assertEqual(len(db.touching("persons")), 1)

    def test_has_many_points_back_at_owner(self) -> None:
        engine, db = library_engine(*PEOPLE)
        self.addCleanup(db.close)

        author = engine.init(Author()).first(C.eq("id", 1))

        self.assertEqual(
            [book.title for book in author.books], ["The Dispossessed", "The Lathe of Heaven"]
        )
        for book in author.books:
            self.assertIs(book.author, author)


class SelfReferenceTests(unittest.TestCase):
    def test_friend_chain_without_cycle(self) -> None:
        engine, db = library_engine(
            *PEOPLE,
            "INSERT INTO \"user_users\" (\"user_id\", \"child_id\") VALUES (1, 2), (2, 3);",
        )
        self.addCleanup(db.close)

        ann = engine.init(User()).first(C.eq("id", 1))

        self.assertEqual([friend.name for friend in ann.friends], ["Bob"])
        bob = ann.friends[0]
        self.assertEqual([friend.name for friend in bob.friends], ["Cleo"])
        self.assertEqual(bob.friends[0].friends, [])

    def test_cyclic_friends_raise_infinity_loop(self) -> None:
        engine, db = library_engine(
            *PEOPLE,
            "INSERT INTO \"user_users\" (\"user_id\", \"child_id\") VALUES (1, 2), (2, 1);",
        )
        self.addCleanup(db.close)

        with capture_logs() as logs:
            with self.assertRaises(InfinityLoop) as ctx:
                engine.init(User()).first(C.eq("id", 1))

        self.assertEqual(ctx.exception.model, "tests._car_fixtures.User")
        warnings = [entry for entry in logs if entry["event"] == "model_loop_detected"]
        self.assertEqual(len(warnings), 1)
        self.assertEqual(warnings[0]["log_level"], "warning")


if __name__ == "__main__":
    unittest.main()
