import unittest

from tickflow.errors import SchemaError, SchemaMismatch
from tickflow.ir.row import Row, make_row
from tickflow.ir.schema import FieldSpec, Schema


class TestFieldSpec(unittest.TestCase):
    def test_parses_name_and_type(self) -> None:
        spec = FieldSpec("age:int")
        self.assertEqual(spec.name, "age")
        self.assertEqual(spec.datatype, "integer")
        self.assertEqual(str(spec), "age:integer")

    def test_bare_name_is_opaque(self) -> None:
        self.assertEqual(FieldSpec("yo").datatype, "opaque")

    def test_rejects_unknown_type_and_bad_name(self) -> None:
        with self.assertRaises(SchemaError):
            FieldSpec("x:float")
        with self.assertRaises(SchemaError):
            FieldSpec("1x:string")
        with self.assertRaises(SchemaError):
            FieldSpec("x:string", "integer")


class TestSchema(unittest.TestCase):
    def test_duplicate_fields_rejected(self) -> None:
        with self.assertRaisesRegex(SchemaError, "Duplicate field"):
            Schema.parse(["name:string", "name:integer"])

    def test_check_reports_arity_and_type(self) -> None:
        schema = Schema.parse(["name:string", "id:integer"])
        with self.assertRaisesRegex(SchemaMismatch, "Arity mismatch"):
            schema.check(("george",))
        with self.assertRaisesRegex(SchemaMismatch, "Field 'id'"):
            schema.check(("george", "5"))
        with self.assertRaises(SchemaMismatch):
            schema.check(("george", True))
        self.assertEqual(schema.check(["george", 5]), ("george", 5))

    def test_opaque_requires_hashable_values(self) -> None:
        schema = Schema.parse(["yo"])
        self.assertTrue(schema.conforms((("nested", 1),)))
        with self.assertRaises(SchemaMismatch):
            schema.check(([1, 2],))

    def test_keyed_schema(self) -> None:
        schema = Schema.keyed(["name:string"], ["reachable:boolean"])
        self.assertTrue(schema.is_keyed)
        self.assertEqual(schema.key, ("name",))
        self.assertEqual(schema.key_indexes, (0,))
        full = Schema.parse(["a", "b"], key=["a", "b"])
        self.assertFalse(full.is_keyed)
        with self.assertRaises(SchemaError):
            Schema.parse(["a"], key=["missing"])

    def test_compatibility_treats_opaque_as_wildcard(self) -> None:
        typed = Schema.parse(["name:string", "id:integer"])
        self.assertTrue(typed.compatible_with(Schema.parse(["x", "y"])))
        self.assertTrue(typed.compatible_with(Schema.parse(["n:string", "i:int"])))
        self.assertFalse(typed.compatible_with(Schema.parse(["n:string", "i:string"])))
        self.assertFalse(typed.compatible_with(Schema.parse(["n:string"])))

    def test_dict_form(self) -> None:
        schema = Schema.keyed(["name:string"], ["reachable:boolean"])
        data = schema.to_dict()
        self.assertEqual(data, {"fields": ["name:string", "reachable:boolean"], "key": ["name"]})
        self.assertEqual(Schema.from_dict(data), schema)


class TestRow(unittest.TestCase):
    def test_access_by_attribute_index_and_name(self) -> None:
        schema = Schema.parse(["name:string", "id:integer", "color:string"])
        row = make_row(schema, ("george", 5, "green"))
        self.assertEqual(row.name, "george")
        self.assertEqual(row[1], 5)
        self.assertEqual(row["color"], "green")
        self.assertEqual(row.as_dict(), {"name": "george", "id": 5, "color": "green"})
        self.assertEqual(row.key(), ("george", 5, "green"))
        with self.assertRaises(AttributeError):
            row.missing

    def test_rows_are_immutable(self) -> None:
        row = make_row(Schema.parse(["name:string"]), ("george",))
        with self.assertRaises(AttributeError):
            row.name = "mary"

    def test_equality_uses_values_only(self) -> None:
        a = make_row(Schema.parse(["name:string"]), ("x",))
        b = make_row(Schema.parse(["other"]), ("x",))
        self.assertEqual(a, b)
        self.assertEqual(len({a, b}), 1)

    def test_fields_named_like_row_members(self) -> None:
        schema = Schema.parse(["key", "values", "schema", "get", "as_dict"])
        row = make_row(schema, ("k1", 1, "s", "g", "d"))
        self.assertEqual(row.key, "k1")
        self.assertEqual(row.values, 1)
        self.assertEqual(row.schema, "s")
        self.assertEqual(row.get, "g")
        self.assertEqual(row.as_dict, "d")
        self.assertEqual(row["key"], "k1")
        self.assertEqual(tuple(row), ("k1", 1, "s", "g", "d"))

        plain = make_row(Schema.parse(["name:string"]), ("george",))
        self.assertEqual(plain.values, ("george",))
        self.assertEqual(plain.key(), ("george",))
        self.assertEqual(plain.get("name"), "george")
        self.assertEqual(plain.get("missing", 0), 0)
        self.assertIs(plain.schema, make_row(plain.schema, ("mary",)).schema)

    def test_equal_values_of_different_types_stay_distinct(self) -> None:
        schema = Schema.parse(["v"])
        one = make_row(schema, (1,))
        true = make_row(schema, (True,))
        self.assertNotEqual(one, true)
        self.assertEqual(len({one, true}), 2)
        self.assertEqual(one, make_row(schema, (1,)))

    def test_make_row_rejects_none_and_bad_values(self) -> None:
        schema = Schema.parse(["name:string"])
        with self.assertRaises(SchemaMismatch):
            make_row(schema, None)
        with self.assertRaises(SchemaMismatch):
            make_row(schema, "george")
        self.assertIsInstance(schema.make(["george"]), Row)

    def test_mixed_types_still_sort(self) -> None:
        schema = Schema.parse(["v"])
        rows = sorted([make_row(schema, ("b",)), make_row(schema, (1,)), make_row(schema, ("a",))])
        self.assertEqual(len(rows), 3)


if __name__ == "__main__":
    unittest.main()
