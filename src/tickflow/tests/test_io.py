import io
import tempfile
from pathlib import Path
import unittest

from tickflow.config import EngineConfig
from tickflow.errors import ExternalIOFailure, SchemaMismatch
from tickflow.io.csv_source import load_csv, read_rows
from tickflow.io.sinks import ListSink, StdioSink
from tickflow.io.stores import DiskCacheStore, DurableStore, MemoryStore
from tickflow.ir.schema import Schema
from tickflow.runtime.program import Program


PEEPS = Schema.parse(["name:string", "id:integer", "color:string"])


class TestMemoryStore(unittest.TestCase):
    def test_durable_table_survives_program_restart(self) -> None:
        store = MemoryStore()
        self.assertIsInstance(store, DurableStore)
        first = Program("first", store=store)
        peeps = first.durable_table("peeps", PEEPS)
        first.merge_next(peeps, peeps.map(lambda p: (p.name, p.id + 1, p.color) if p.id < 6 else None))
        first.insert(peeps, [("george", 5, "green")])
        first.run(2)
        self.assertEqual(store.rows("peeps"), {("george", 5, "green"), ("george", 6, "green")})

        second = Program("second", store=store)
        again = second.durable_table("peeps", PEEPS)
        self.assertEqual(again.values(), store.rows("peeps"))

    def test_retraction_reaches_store(self) -> None:
        store = MemoryStore({"status": [("starting",)]})
        program = Program("status")
        status = program.durable_table("status", Schema.parse(["state:string"]), store=store)
        program.replace(status, [("running",)])
        program.tick()
        self.assertEqual(status.values(), {("running",)})
        self.assertEqual(store.rows("status"), {("running",)})


class TestDiskCacheStore(unittest.TestCase):
    def test_persist_load_retract(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with DiskCacheStore(tmpdir) as store:
                store.persist("peeps", ("george", 5, "green"))
                store.persist("peeps", ("mary", 9, "mauve"))
                store.retract("peeps", ("mary", 9, "mauve"))
                self.assertEqual(store.load("peeps"), {("george", 5, "green")})
                self.assertEqual(store.load("other"), set())
                store.clear("peeps")
                self.assertEqual(store.load("peeps"), set())

    def test_program_uses_configured_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = EngineConfig(store_dir=tmpdir)
            program = Program("disk", config=config)
            peeps = program.durable_table("peeps", PEEPS)
            program.insert(peeps, [("george", 5, "green")])
            self.assertIsInstance(program.store, DiskCacheStore)
            self.assertEqual(program.store.directory, Path(tmpdir))
            program.store.close()

            with DiskCacheStore(tmpdir, namespace="disk") as reopened:
                restored = Program("restored", store=reopened)
                self.assertEqual(
                    restored.durable_table("peeps", PEEPS).values(),
                    {("george", 5, "green")},
                )

    def test_programs_sharing_a_directory_keep_rows_apart(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = EngineConfig(store_dir=tmpdir)
            first = Program("first", config=config)
            first.insert(first.durable_table("peeps", PEEPS), [("george", 5, "green")])
            second = Program("second", config=config)
            others = second.durable_table("peeps", PEEPS)
            try:
                self.assertEqual(others.values(), set())
                second.insert(others, [("mary", 9, "mauve")])
                second.store.clear()
                self.assertEqual(first.store.load("peeps"), {("george", 5, "green")})
                self.assertEqual(second.store.load("peeps"), set())
            finally:
                first.store.close()
                second.store.close()

            again = Program("first", config=config)
            try:
                self.assertEqual(again.durable_table("peeps", PEEPS).values(), {("george", 5, "green")})
            finally:
                again.store.close()

    def test_namespace_scopes_keys(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with DiskCacheStore(tmpdir, namespace="a") as a, DiskCacheStore(tmpdir, namespace="b") as b:
                a.persist("peeps", ("george", 5, "green"))
                self.assertEqual(b.load("peeps"), set())
                self.assertEqual(a.load("peeps"), {("george", 5, "green")})


class TestSinks(unittest.TestCase):
    def test_stdio_sink_formats_lines(self) -> None:
        out = io.StringIO()
        program = Program("printer", sink=StdioSink(out))
        peeps = program.table("peeps", PEEPS)
        program.send(program.stdio, peeps.map(lambda p: f"Hello {p.name}"))
        wide = program.stream("wide", Schema.parse(["name:string", "id:integer"]))
        program.send(wide, peeps.project("name", "id"))
        program.insert(peeps, [("george", 5, "green")])
        report = program.tick()
        self.assertEqual(report.emitted, 2)
        self.assertEqual(sorted(out.getvalue().splitlines()), ["Hello george", "george 5"])

    def test_custom_formatter_and_per_stream_sink(self) -> None:
        out = io.StringIO()
        shared = ListSink()
        program = Program("fmt", sink=shared)
        peeps = program.table("peeps", PEEPS)
        loud = program.stream("loud", sink=StdioSink(out, formatter=lambda row: str(row[0]).upper()))
        program.send(loud, peeps.map(lambda p: p.name))
        program.send(program.stdio, peeps.map(lambda p: p.color))
        program.insert(peeps, [("george", 5, "green")])
        program.tick()
        self.assertEqual(out.getvalue(), "GEORGE\n")
        self.assertEqual(shared.records, [("stdio", ("green",))])

    def test_failing_sink_aborts_tick(self) -> None:
        class Broken:
            def emit(self, collection, row):
                raise BrokenPipeError("closed")

        program = Program("broken", sink=Broken())
        peeps = program.table("peeps", PEEPS)
        program.send(program.stdio, peeps.project("name"))
        program.insert(peeps, [("george", 5, "green")])
        with self.assertRaises(ExternalIOFailure) as ctx:
            program.tick()
        self.assertIsInstance(ctx.exception.original, BrokenPipeError)
        self.assertEqual(program.current_tick, 0)


class TestCsvSeeding(unittest.TestCase):
    def test_load_csv_coerces_types(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "peeps.csv"
            path.write_text("name,id,color\ngeorge,5,green\n mary , 9 ,mauve\n", encoding="utf-8")
            program = Program("csv")
            peeps = program.table("peeps", PEEPS)
            self.assertEqual(load_csv(peeps, path), 2)
            self.assertEqual(peeps.values(), {("george", 5, "green"), ("mary", 9, "mauve")})

    def test_column_mapping_and_booleans(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nodes.csv"
            path.write_text("node,flag,extra\na,true,x\nb,no,y\n", encoding="utf-8")
            schema = Schema.keyed(["name:string"], ["reachable:boolean"])
            rows = read_rows(path, schema.fields, columns=["node", "flag"])
            self.assertEqual(rows, [("a", True), ("b", False)])
            with self.assertRaises(SchemaMismatch):
                read_rows(path, schema.fields, columns=["node"])

    def test_errors_report_location(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "peeps.csv"
            path.write_text("name,id,color\ngeorge,5,green\nmary,nine,mauve\n", encoding="utf-8")
            with self.assertRaisesRegex(ExternalIOFailure, r"peeps\.csv row 3 column id"):
                read_rows(path, PEEPS.fields)
            path.write_text("name,color\ngeorge,green\n", encoding="utf-8")
            with self.assertRaisesRegex(ExternalIOFailure, "missing columns"):
                read_rows(path, PEEPS.fields)
            with self.assertRaisesRegex(ExternalIOFailure, "not found"):
                read_rows(Path(tmpdir) / "absent.csv", PEEPS.fields)


if __name__ == "__main__":
    unittest.main()
