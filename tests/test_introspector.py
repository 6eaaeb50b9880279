from __future__ import annotations

import unittest
from dataclasses import dataclass, field
from typing import Optional

from structlog.testing import capture_logs

from relorm.core.builder import Builder
from relorm.core.cache import MemoryCache
from relorm.core.descriptors import RelationKind
from relorm.core.errors import ColumnNotFound, NoBuilder, NoPrimaryKey, UnknownRelationTag
from relorm.core.entity import Entity
from relorm.core.introspector import Introspector
from relorm.core.naming import namespaced_name
from tests._car_fixtures import (
    LIBRARY_SCHEMA,
    SCHEMA,
    Author,
    Book,
    Car,
    Document,
    Wheel,
    connect,
)

INTEGER_RANGE = "numeric,min=-9223372036854775808,max=9223372036854775807"

EXTRA_SCHEMA = (
    'CREATE TABLE "keylesses" ("name" VARCHAR(20));',
    'CREATE TABLE "stats" ("id" INTEGER PRIMARY KEY, "label" TEXT, "size" VARCHAR(10) NOT NULL);',
    'CREATE TABLE "hooked_notes" ("id" INTEGER PRIMARY KEY, "body" TEXT NOT NULL);',
)


@dataclass
class Keyless(Entity):
    name: str = ""


@dataclass
class Ghost(Entity):
    id: Optional[int] = None


@dataclass
class Stat(Entity):
    id: Optional[int] = None
    label: str = field(default="", metadata={"validate": "min=2"})
    size: str = field(default="", metadata={"orm": "permission:r"})
    wheel_total: int = field(default=0, metadata={"orm": "select:SELECT COUNT(*) FROM wheels"})
    note: str = field(default="", metadata={"orm": "custom"})
    scratch: str = field(default="", metadata={"orm": "-"})
    transient: str = ""
    _private: str = ""


@dataclass
class RenamedStat(Entity):
    __table__ = "stats"

    id: Optional[int] = None
    caption: str = field(default="", metadata={"orm": "column:missing"})


@dataclass
class BadTagStat(Entity):
    __table__ = "stats"

    id: Optional[int] = None
    wheels: list[Wheel] = field(default_factory=list, metadata={"orm": "relation:hasOne"})


@dataclass
class HookedNote(Entity):
    id: Optional[int] = None
    body: str = ""

    def before_create(self) -> None:
        self.body = self.body.strip()

    def after_find(self) -> None:
        pass


class NotAnEntity:
    pass


class IntrospectorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = connect(*SCHEMA, *LIBRARY_SCHEMA, *EXTRA_SCHEMA)
        self.cache = MemoryCache()
        self.introspector = Introspector(Builder(self.db), self.cache)

    def tearDown(self) -> None:
        self.db.close()

    def test_car_fields(self) -> None:
        descriptor = self.introspector.descriptor(Car)

        self.assertEqual(descriptor.name, "tests._car_fixtures.Car")
        self.assertEqual(descriptor.table, "cars")
        self.assertEqual(descriptor.strategy, "eager")
        self.assertEqual(
            [item.name for item in descriptor.fields],
            ["id", "owner_id", "brand", "created_at", "updated_at"],
        )
        self.assertEqual([item.name for item in descriptor.primary_keys], ["id"])
        self.assertEqual(descriptor.time_fields, ("created_at", "updated_at"))
        self.assertFalse(descriptor.soft_delete)

        identifier = descriptor.field("id")
        self.assertTrue(identifier.autoincrement)
        self.assertEqual(identifier.validate, f"omitempty,{INTEGER_RANGE}")
        self.assertEqual(descriptor.field("owner_id").validate, f"omitempty,{INTEGER_RANGE}")
        self.assertEqual(descriptor.field("brand").validate, "max=50,required")
        self.assertEqual(descriptor.field("created_at").validate, "")

    def test_car_relations(self) -> None:
        descriptor = self.introspector.descriptor(Car)
        kinds = {relation.name: relation.kind for relation in descriptor.relations}
        self.assertEqual(
            kinds,
            {
                "owner": RelationKind.BELONGS_TO,
                "wheels": RelationKind.HAS_MANY,
                "drivers": RelationKind.MANY_TO_MANY,
                "radio": RelationKind.HAS_ONE,
                "liquid": RelationKind.HAS_ONE,
            },
        )

    def test_related_descriptors_are_cached_together(self) -> None:
        with capture_logs() as logs:
            self.introspector.descriptor(Car)
        built = sorted(entry["model"] for entry in logs if entry["event"] == "descriptor_built")
        self.assertEqual(
            built,
            [
                "tests._car_fixtures.Car",
                "tests._car_fixtures.Driver",
                "tests._car_fixtures.Liquid",
                "tests._car_fixtures.Owner",
                "tests._car_fixtures.Radio",
                "tests._car_fixtures.Wheel",
            ],
        )
        self.assertTrue(self.cache.exist("tests._car_fixtures.Wheel"))

        self.db.reset()
        with capture_logs() as logs:
            again = self.introspector.descriptor(Car)
        self.assertIs(again, self.cache.get("tests._car_fixtures.Car"))
        self.assertEqual(self.db.statements, [])
        self.assertEqual(logs[0]["event"], "descriptor_cache_hit")

    def test_mutual_relations_resolve_through_drafts(self) -> None:
        author = self.introspector.descriptor(Author)
        book = self.introspector.descriptor(Book)

        books = author.relation("books")
        self.assertEqual(books.kind, RelationKind.HAS_MANY)
        self.assertEqual(books.foreign_key.name, "id")
        self.assertEqual(books.association_foreign_key.name, "author_id")
        back = book.relation("author")
        self.assertEqual(back.kind, RelationKind.BELONGS_TO)
        self.assertEqual(back.foreign_key.name, "author_id")
        self.assertEqual(back.association_foreign_key.name, "id")

    def test_field_tags(self) -> None:
        descriptor = self.introspector.descriptor(Stat)
        by_name = {item.name: item for item in descriptor.fields}

        self.assertEqual(
            list(by_name), ["id", "label", "size", "wheel_total", "note", "transient"]
        )
        self.assertEqual(by_name["label"].validate, "omitempty,min=2,max=65535")
        self.assertTrue(by_name["size"].permission.read)
        self.assertFalse(by_name["size"].permission.write)
        self.assertEqual(by_name["size"].validate, "max=10,required")

        computed = by_name["wheel_total"]
        self.assertFalse(computed.exists)
        self.assertEqual(computed.select, "SELECT COUNT(*) FROM wheels")
        self.assertTrue(computed.permission.read)
        self.assertFalse(computed.permission.write)

        self.assertTrue(by_name["note"].custom)
        self.assertFalse(by_name["note"].permission.read)
        self.assertFalse(by_name["transient"].exists)
        self.assertFalse(by_name["transient"].permission.read)

    def test_soft_delete_detection(self) -> None:
        descriptor = self.introspector.descriptor(Document)
        self.assertTrue(descriptor.soft_delete)
        self.assertEqual(descriptor.time_fields, ("deleted_at",))

    def test_hooks_are_discovered(self) -> None:
        descriptor = self.introspector.descriptor(HookedNote)
        self.assertEqual(descriptor.hooks, frozenset({"before_create", "after_find"}))

    def test_schema_errors(self) -> None:
        with self.assertRaises(ColumnNotFound):
            self.introspector.descriptor(Ghost)
        with self.assertRaises(NoPrimaryKey):
            self.introspector.descriptor(Keyless)
        with self.assertRaises(ColumnNotFound) as ctx:
            self.introspector.descriptor(RenamedStat)
        self.assertEqual(ctx.exception.column, "missing")
        with self.assertRaises(UnknownRelationTag):
            self.introspector.descriptor(BadTagStat)
        self.assertFalse(self.cache.exist(namespaced_name(BadTagStat)))

    def test_rejects_non_entities(self) -> None:
        with self.assertRaises(TypeError):
            self.introspector.descriptor(NotAnEntity)

    def test_missing_builder(self) -> None:
        with self.assertRaises(NoBuilder):
            Introspector(None, MemoryCache()).descriptor(Car)

    def test_cache_ttl_is_applied(self) -> None:
        now = [0.0]
        cache = MemoryCache(clock=lambda: now[0])
        introspector = Introspector(Builder(self.db), cache, cache_ttl=5)
        introspector.descriptor(Document)
        self.assertTrue(cache.exist("tests._car_fixtures.Document"))
        now[0] = 6.0
        self.assertFalse(cache.exist("tests._car_fixtures.Document"))

    def test_default_strategy_comes_from_introspector(self) -> None:
        introspector = Introspector(Builder(self.db), MemoryCache(), strategy="lazy")
        self.assertEqual(introspector.descriptor(Document).strategy, "lazy")


if __name__ == "__main__":
    unittest.main()
