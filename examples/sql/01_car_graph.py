"""Create, read, update and delete a car together with its related rows."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Optional

from relorm import C, Database, Engine, Entity, SQLiteDialect

SCHEMA = (
    'CREATE TABLE "owners" ("id" INTEGER PRIMARY KEY, "name" VARCHAR(100) NOT NULL);',
    'CREATE TABLE "cars" ("id" INTEGER PRIMARY KEY, '
    '"owner_id" INTEGER NULL REFERENCES "owners" ("id"), '
    '"brand" VARCHAR(50) NOT NULL, "created_at" DATETIME NULL, "updated_at" DATETIME NULL);',
    'CREATE TABLE "wheels" ("id" INTEGER PRIMARY KEY, '
    '"car_id" INTEGER NOT NULL REFERENCES "cars" ("id"), "brand" VARCHAR(50) NOT NULL);',
)


@dataclass
class Owner(Entity):
    id: Optional[int] = None
    name: str = ""


@dataclass
class Wheel(Entity):
    id: Optional[int] = None
    car_id: Optional[int] = None
    brand: str = ""


@dataclass
class Car(Entity):
    id: Optional[int] = None
    owner_id: Optional[int] = None
    brand: str = ""
    # belongsTo: cars.owner_id references owners.
    owner: Optional[Owner] = None
    # hasMany: wheels.car_id references cars.
    wheels: list[Wheel] = field(default_factory=list)


def main() -> None:
    # 1) Autocommit connection; relorm opens a transaction per write.
    conn = sqlite3.connect(":memory:", isolation_level=None)
    for statement in SCHEMA:
        conn.execute(statement)
    engine = Engine(Database(conn, SQLiteDialect()))

    try:
        # 2) Create the car, its new owner and its wheels in one call.
        car = Car(
            brand="BMW",
            owner=Owner(name="John Doe"),
            wheels=[Wheel(brand="Pirelli"), Wheel(brand="Pirelli")],
        )
        engine.init(car).create()
        print("Created car:", car.id, "owner:", car.owner_id)

        # 3) Read it back with every relation loaded.
        model = engine.init(Car())
        loaded = model.first(C.eq("id", car.id))
        print("Loaded:", loaded.brand, loaded.owner.name, [w.brand for w in loaded.wheels])

        # 4) Mutate and update; only the differences are written.
        loaded.brand = "BMW M3"
        loaded.wheels[1].brand = "Michelin"
        model.update()
        print("Changes:", [change.field for change in model.changes])

        # 5) Read only the owner name through a whitelist.
        slim = engine.model(Car()).set_whitelist("owner.name").init().first(C.eq("id", car.id))
        print("Whitelisted:", repr(slim.brand), slim.owner)

        # 6) Delete the car; its wheels go with it, the owner stays.
        engine.init(Car(id=car.id)).delete()
        print("Cars left:", engine.init(Car()).count(), "owners:", engine.init(Owner()).count())
    finally:
        conn.close()


if __name__ == "__main__":
    main()
