from __future__ import annotations

import unittest

from relorm.core.columns import ColumnKind, ColumnType, convert_column_type
from relorm.ports.db_api.information import Information
from tests._car_fixtures import SCHEMA, connect


class ConvertColumnTypeTests(unittest.TestCase):
    def test_integer_ranges(self) -> None:
        self.assertEqual(
            convert_column_type("INT"),
            ColumnType(ColumnKind.INTEGER, raw="INT", min=-2147483648, max=2147483647),
        )
        unsigned = convert_column_type("int(10) unsigned")
        self.assertEqual((unsigned.min, unsigned.max), (0, 4294967295))
        self.assertEqual(convert_column_type("TINYINT").max, 127)

    def test_plain_integer_width_depends_on_dialect(self) -> None:
        self.assertEqual(convert_column_type("INTEGER").max, 2147483647)
        self.assertEqual(
            convert_column_type("INTEGER", wide_integer=True).max, 9223372036854775807
        )

    def test_text_kinds(self) -> None:
        self.assertEqual(convert_column_type("VARCHAR(50)").size, 50)
        self.assertEqual(convert_column_type("character varying", 20).size, 20)
        textarea = convert_column_type("TEXT")
        self.assertEqual(textarea.kind, ColumnKind.TEXTAREA)
        self.assertEqual(textarea.size, 65535)

    def test_other_kinds(self) -> None:
        samples = [
            ("BOOLEAN", ColumnKind.BOOL),
            ("tinyint(1)", ColumnKind.BOOL),
            ("DOUBLE PRECISION", ColumnKind.FLOAT),
            ("DECIMAL(10,2)", ColumnKind.FLOAT),
            ("DATE", ColumnKind.DATE),
            ("TIME", ColumnKind.TIME),
            ("TIMESTAMP WITH TIME ZONE", ColumnKind.DATETIME),
            ("DATETIME", ColumnKind.DATETIME),
        ]
        for raw, kind in samples:
            with self.subTest(raw=raw):
                self.assertEqual(convert_column_type(raw).kind, kind)

    def test_enum_items(self) -> None:
        column_type = convert_column_type("enum('small','large','extra large')")
        self.assertEqual(column_type.kind, ColumnKind.SELECT)
        self.assertEqual(column_type.items, ("small", "large", "extra large"))

    def test_unknown_types_have_no_kind(self) -> None:
        self.assertIsNone(convert_column_type("BLOB"))
        self.assertIsNone(convert_column_type(""))


class SQLiteInformationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = connect(*SCHEMA)

    def tearDown(self) -> None:
        self.db.close()

    def test_describe_cars(self) -> None:
        columns = {column.name: column for column in Information(self.db, "cars").describe()}

        self.assertEqual(
            list(columns), ["id", "owner_id", "brand", "created_at", "updated_at"]
        )
        identifier = columns["id"]
        self.assertTrue(identifier.primary_key)
        self.assertTrue(identifier.autoincrement)
        self.assertFalse(identifier.nullable)
        self.assertEqual(identifier.position, 1)

        brand = columns["brand"]
        self.assertFalse(brand.nullable)
        self.assertEqual(brand.type.kind, ColumnKind.TEXT)
        self.assertEqual(brand.type.size, 50)

        self.assertTrue(columns["owner_id"].nullable)
        self.assertEqual(columns["owner_id"].type.max, 9223372036854775807)
        self.assertEqual(columns["created_at"].type.kind, ColumnKind.DATETIME)

    def test_describe_selected_columns(self) -> None:
        columns = Information(self.db, "car_drivers").describe("car_id", "driver_id", "missing")
        self.assertEqual([column.name for column in columns], ["car_id", "driver_id"])

    def test_describe_missing_table_is_empty(self) -> None:
        self.assertEqual(Information(self.db, "car_wheels").describe(), [])

    def test_foreign_keys(self) -> None:
        keys = Information(self.db, "car_drivers").foreign_keys()
        pairs = sorted(
            (key.primary.column, key.secondary.table, key.secondary.column) for key in keys
        )
        self.assertEqual(pairs, [("car_id", "cars", "id"), ("driver_id", "drivers", "id")])
        self.assertEqual(Information(self.db, "owners").foreign_keys(), [])

    def test_dotted_table_selects_database(self) -> None:
        info = Information(self.db, "main.cars")
        self.assertEqual(info.database, "main")
        self.assertEqual(info.table, "cars")
        self.assertEqual(len(info.describe()), 5)


if __name__ == "__main__":
    unittest.main()
