from __future__ import annotations

import unittest

from relorm.core import wblist
from relorm.core.builder import Builder
from relorm.core.cache import MemoryCache
from relorm.core.introspector import Introspector
from relorm.core.wblist import Policy, WBList
from tests._car_fixtures import LIBRARY_SCHEMA, SCHEMA, Car, Owner, User, car_engine, connect


class WBListTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = connect(*SCHEMA, *LIBRARY_SCHEMA)
        self.introspector = Introspector(Builder(self.db), MemoryCache())
        self.car = self.introspector.descriptor(Car)

    def tearDown(self) -> None:
        self.db.close()

    def resolve(self, wb, descriptor=None):
        return wblist.resolve(wb, descriptor or self.car, self.introspector.descriptor)

    @staticmethod
    def readable(items) -> list[str]:
        return [item.name for item in items if item.permission.read]

    def test_no_list_keeps_descriptor_permissions(self) -> None:
        fields, relations, active = self.resolve(None)
        self.assertIsNone(active)
        self.assertEqual(self.readable(fields), ["id", "owner_id", "brand", "created_at", "updated_at"])
        self.assertEqual(len(self.readable(relations)), 5)

    def test_resolve_copies_descriptor_entries(self) -> None:
        fields, _, _ = self.resolve(WBList(Policy.WHITELIST, ["brand"]))
        self.assertFalse(fields[1].permission.read)
        self.assertTrue(self.car.field("owner_id").permission.read)

    def test_dotted_whitelist_adds_path_keys(self) -> None:
        fields, relations, active = self.resolve(WBList(Policy.WHITELIST, ["owner.name"]))

        self.assertEqual(self.readable(fields), ["id", "owner_id", "created_at", "updated_at"])
        self.assertEqual(self.readable(relations), ["owner"])
        self.assertEqual(
            active.fields,
            ["owner.name", "id", "created_at", "updated_at", "owner.id", "owner_id"],
        )
        child = wblist.for_relation(active, "owner")
        self.assertEqual(child, WBList(Policy.WHITELIST, ["name", "id"]))

        owner_fields, _, _ = self.resolve(child, self.introspector.descriptor(Owner))
        self.assertEqual(self.readable(owner_fields), ["id", "name"])

    def test_whole_relation_on_whitelist(self) -> None:
        fields, relations, active = self.resolve(WBList(Policy.WHITELIST, ["wheels", "wheels.brand"]))

        self.assertEqual(self.readable(relations), ["wheels"])
        self.assertIn("id", self.readable(fields))
        self.assertNotIn("brand", self.readable(fields))
        self.assertIsNone(wblist.for_relation(active, "wheels"))

    def test_blacklist_keeps_mandatory_keys(self) -> None:
        fields, relations, active = self.resolve(
            WBList(Policy.BLACKLIST, ["id", "owner_id", "brand", "wheels"])
        )

        self.assertEqual(active.fields, ["brand", "wheels"])
        self.assertEqual(self.readable(fields), ["id", "owner_id", "created_at", "updated_at"])
        self.assertEqual(self.readable(relations), ["owner", "drivers", "radio", "liquid"])
        self.assertFalse(relations[1].permission.write)

    def test_blacklist_of_only_mandatory_keys_is_dropped(self) -> None:
        fields, _, active = self.resolve(WBList(Policy.BLACKLIST, ["id", "created_at"]))
        self.assertIsNone(active)
        self.assertEqual(len(self.readable(fields)), 5)

    def test_dotted_blacklist_is_handed_down(self) -> None:
        _, relations, active = self.resolve(WBList(Policy.BLACKLIST, ["owner.name"]))
        self.assertEqual(len(self.readable(relations)), 5)
        self.assertEqual(wblist.for_relation(active, "owner"), WBList(Policy.BLACKLIST, ["name"]))
        self.assertIsNone(wblist.for_relation(active, "wheels"))

    def test_self_reference_inherits_parent_list(self) -> None:
        friends = self.introspector.descriptor(User).relation("friends")
        inherited = wblist.inherit(WBList(Policy.WHITELIST, ["name"]), friends)
        self.assertEqual(inherited, WBList(Policy.WHITELIST, ["name"]))

        explicit = WBList(Policy.WHITELIST, ["name"], explicit=True)
        self.assertIsNone(wblist.inherit(explicit, friends))
        self.assertIsNone(wblist.inherit(None, friends))

    def test_copy_is_independent(self) -> None:
        original = WBList(Policy.WHITELIST, ["brand"])
        copied = original.copy()
        copied.fields.append("id")
        self.assertEqual(original.fields, ["brand"])
        self.assertTrue(original.whitelist)


class ModelListTests(unittest.TestCase):
    def test_model_reports_the_list_in_effect(self) -> None:
        engine, db = car_engine()
        self.addCleanup(db.close)
        model = engine.model(Car()).set_whitelist("owner.name")

        self.assertEqual(model.wb_list(), WBList(Policy.WHITELIST, ["owner.name"]))
        model.init()
        self.assertEqual(
            model.wb_list().fields,
            ["owner.name", "id", "created_at", "updated_at", "owner.id", "owner_id"],
        )
        self.assertIsNone(model.set_whitelist().wb_list())

    def test_explicit_flag_is_kept(self) -> None:
        engine, db = car_engine()
        self.addCleanup(db.close)
        model = engine.init(Car()).set_wb_list("blacklist", "brand", explicit=True)

        self.assertEqual(model.wb_list(), WBList(Policy.BLACKLIST, ["brand"], explicit=True))


if __name__ == "__main__":
    unittest.main()
