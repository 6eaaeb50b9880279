from __future__ import annotations

import unittest
from dataclasses import dataclass, field
from typing import Optional

from relorm.core.builder import Builder
from relorm.core.cache import MemoryCache
from relorm.core.descriptors import JoinTable, RelationKind
from relorm.core.errors import (
    AttributeNotFound,
    ForeignKeyNotFound,
    JoinTableNotFound,
    SchemaError,
    UnsupportedPolymorphic,
)
from relorm.core.entity import Entity
from relorm.core.introspector import Introspector
from tests._car_fixtures import LIBRARY_SCHEMA, SCHEMA, Car, Owner, Person, User, connect

EXTRA_SCHEMA = (
    'CREATE TABLE "teams" ("id" INTEGER PRIMARY KEY, "name" VARCHAR(50));',
    'CREATE TABLE "members" ("id" INTEGER PRIMARY KEY, "name" VARCHAR(50));',
    'CREATE TABLE "memberships" ("team_ref" INTEGER NOT NULL, "member_ref" INTEGER NOT NULL);',
    'CREATE TABLE "clubs" ("id" INTEGER PRIMARY KEY);',
    'CREATE TABLE "invoices" ("id" INTEGER PRIMARY KEY, "buyer_id" INTEGER NULL);',
    'CREATE TABLE "garages" ("id" INTEGER PRIMARY KEY);',
    'CREATE TABLE "plates" ("id" INTEGER PRIMARY KEY, "car_id" INTEGER NULL);',
    'CREATE TABLE "nodes" ("id" INTEGER PRIMARY KEY, "node_id" INTEGER NULL);',
    'CREATE TABLE "stickers" ('
    '"id" INTEGER PRIMARY KEY, "label_id" INTEGER NULL, "label_type" VARCHAR(10));',
    'CREATE TABLE "labels" ("id" INTEGER PRIMARY KEY);',
)


@dataclass
class Member(Entity):
    id: Optional[int] = None
    name: str = ""


@dataclass
class Team(Entity):
    id: Optional[int] = None
    name: str = ""
    members: list[Member] = field(
        default_factory=list,
        metadata={"orm": "join_table:memberships;join_fk:team_ref;join_afk:member_ref"},
    )


@dataclass
class Club(Entity):
    id: Optional[int] = None
    members: list[Member] = field(
        default_factory=list, metadata={"orm": "join_table:club_members"}
    )


@dataclass
class Invoice(Entity):
    id: Optional[int] = None
    buyer_id: Optional[int] = None
    customer: Optional[Owner] = field(
        default=None, metadata={"orm": "relation:belongsTo;fk:buyer_id"}
    )


@dataclass
class BrokenInvoice(Entity):
    __table__ = "invoices"

    id: Optional[int] = None
    customer: Optional[Owner] = field(
        default=None, metadata={"orm": "relation:belongsTo;fk:payer_id"}
    )


@dataclass
class Garage(Entity):
    id: Optional[int] = None
    cars: list[Car] = field(default_factory=list)


@dataclass
class Plate(Entity):
    id: Optional[int] = None
    car_id: Optional[int] = None
    car: Optional[Car] = field(
        default=None, metadata={"orm": "relation:belongsTo;polymorphic:Car"}
    )


@dataclass
class Node(Entity):
    id: Optional[int] = None
    node_id: Optional[int] = None
    parent: Optional[Node] = None


@dataclass
class Sticker(Entity):
    id: Optional[int] = None
    label_id: Optional[int] = None
    label_type: str = ""


@dataclass
class Label(Entity):
    id: Optional[int] = None
    stickers: list[Sticker] = field(
        default_factory=list,
        metadata={"orm": "relation:hasMany;polymorphic:Label;polymorphic_value:plain"},
    )
    note: Optional[Sticker] = field(default=None, metadata={"orm": "custom"})


class RelationBuilderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = connect(*SCHEMA, *LIBRARY_SCHEMA, *EXTRA_SCHEMA)
        self.introspector = Introspector(Builder(self.db), MemoryCache())

    def tearDown(self) -> None:
        self.db.close()

    def relation(self, entity_type: type, name: str):
        return self.introspector.descriptor(entity_type).relation(name)

    def test_belongs_to_from_foreign_key(self) -> None:
        owner = self.relation(Car, "owner")
        self.assertEqual(owner.kind, RelationKind.BELONGS_TO)
        self.assertEqual(owner.foreign_key.name, "owner_id")
        self.assertEqual(owner.association_foreign_key.name, "id")
        self.assertFalse(owner.many)

    def test_has_many_from_related_foreign_key(self) -> None:
        wheels = self.relation(Car, "wheels")
        self.assertEqual(wheels.kind, RelationKind.HAS_MANY)
        self.assertEqual(wheels.foreign_key.name, "id")
        self.assertEqual(wheels.association_foreign_key.name, "car_id")
        self.assertEqual(wheels.zero(), [])

    def test_many_to_many_from_join_table(self) -> None:
        drivers = self.relation(Car, "drivers")
        self.assertEqual(drivers.kind, RelationKind.MANY_TO_MANY)
        self.assertEqual(drivers.join_table, JoinTable("car_drivers", "car_id", "driver_id"))
        self.assertEqual(drivers.foreign_key.name, "id")
        self.assertEqual(drivers.association_foreign_key.name, "id")

    def test_polymorphic_has_one(self) -> None:
        radio = self.relation(Car, "radio")
        self.assertEqual(radio.kind, RelationKind.HAS_ONE)
        self.assertTrue(radio.is_polymorphic)
        self.assertEqual(radio.polymorphic.field.name, "car_id")
        self.assertEqual(radio.polymorphic.type.name, "car_type")
        self.assertEqual(radio.polymorphic.value, "radio")
        self.assertEqual(radio.related_key().name, "car_id")

    def test_polymorphic_has_many_with_defaults(self) -> None:
        stickers = self.relation(Label, "stickers")
        self.assertEqual(stickers.kind, RelationKind.HAS_MANY)
        self.assertEqual(stickers.polymorphic.field.name, "label_id")
        self.assertEqual(stickers.polymorphic.type.name, "label_type")
        self.assertEqual(stickers.polymorphic.value, "plain")

    def test_has_one_from_related_foreign_key(self) -> None:
        passport = self.relation(Person, "passport")
        self.assertEqual(passport.kind, RelationKind.HAS_ONE)
        self.assertEqual(passport.foreign_key.name, "id")
        self.assertEqual(passport.association_foreign_key.name, "person_id")

    def test_self_referencing_many_to_many(self) -> None:
        friends = self.relation(User, "friends")
        self.assertEqual(friends.kind, RelationKind.MANY_TO_MANY)
        self.assertTrue(friends.self_reference)
        self.assertEqual(friends.join_table, JoinTable("user_users", "user_id", "child_id"))

    def test_tagged_join_table(self) -> None:
        members = self.relation(Team, "members")
        self.assertEqual(members.kind, RelationKind.MANY_TO_MANY)
        self.assertEqual(members.join_table, JoinTable("memberships", "team_ref", "member_ref"))

    def test_tagged_foreign_key(self) -> None:
        customer = self.relation(Invoice, "customer")
        self.assertEqual(customer.kind, RelationKind.BELONGS_TO)
        self.assertEqual(customer.foreign_key.name, "buyer_id")
        self.assertEqual(customer.association_foreign_key.name, "id")

    def test_custom_relation_is_not_resolved(self) -> None:
        note = self.relation(Label, "note")
        self.assertTrue(note.custom)
        self.assertIsNone(note.foreign_key)

    def test_errors(self) -> None:
        with self.assertRaises(JoinTableNotFound):
            self.introspector.descriptor(Club)
        with self.assertRaises(AttributeNotFound):
            self.introspector.descriptor(BrokenInvoice)
        with self.assertRaises(ForeignKeyNotFound):
            self.introspector.descriptor(Garage)
        with self.assertRaises(UnsupportedPolymorphic):
            self.introspector.descriptor(Plate)
        with self.assertRaises(SchemaError):
            self.introspector.descriptor(Node)


if __name__ == "__main__":
    unittest.main()
