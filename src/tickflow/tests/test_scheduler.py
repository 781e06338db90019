import unittest

from tickflow.config import EngineConfig
from tickflow.errors import NonTerminatingFixpoint
from tickflow.ir.schema import Schema
from tickflow.runtime.program import Program
from tickflow.runtime.scheduler import TickPhase


EDGE = Schema.parse(["f:string", "t:string"])
CHAIN = [("a", "b"), ("b", "c"), ("c", "d")]


def closure_program(reverse: bool = False) -> Program:
    program = Program("closure")
    edges = program.table("edges", EDGE)
    path = program.table("path", EDGE)
    rules = [
        ("base", edges.map(lambda e: (e.f, e.t))),
        (
            "extend",
            path.join(edges, lambda p, e: (p.f, e.t), on=[("t", "f")]),
        ),
    ]
    if reverse:
        rules.reverse()
    for name, expr in rules:
        program.merge_now(path, expr, name=name)
    program.insert(edges, CHAIN)
    return program


class TestFixpoint(unittest.TestCase):
    def test_transitive_closure_in_one_tick(self) -> None:
        program = closure_program()
        report = program.tick()
        self.assertEqual(
            program["path"].values(),
            {("a", "b"), ("b", "c"), ("c", "d"), ("a", "c"), ("b", "d"), ("a", "d")},
        )
        self.assertEqual(report.iterations, 4)
        self.assertEqual(report.tick, 0)
        self.assertEqual(report.sizes, {"edges": 3, "path": 6})

    def test_rule_order_does_not_change_result(self) -> None:
        forward = closure_program()
        backward = closure_program(reverse=True)
        forward.tick()
        backward.tick()
        self.assertEqual(forward.snapshot(), backward.snapshot())

    def test_second_tick_is_quiet(self) -> None:
        program = closure_program()
        first = program.tick()
        self.assertEqual(first.changed_names, ["edges", "path"])
        self.assertFalse(first.quiet)
        second = program.tick()
        self.assertTrue(second.quiet)
        self.assertEqual(second.iterations, 1)
        self.assertEqual(program.current_tick, 2)
        self.assertIs(program.phase, TickPhase.TICK_END)

    def test_strata(self) -> None:
        program = closure_program()
        strata = program.scheduler.strata()
        self.assertEqual([rule.name for rule in strata["recursive"]], ["extend"])
        self.assertEqual([rule.name for rule in strata["non_recursive"]], ["base"])

    def test_mutual_recursion_is_recursive(self) -> None:
        program = Program("mutual")
        left = program.table("left", Schema.parse(["v:integer"]))
        right = program.table("right", Schema.parse(["v:integer"]))
        program.merge_now(right, left.map(lambda r: r.v), name="l2r")
        program.merge_now(left, right.map(lambda r: r.v), name="r2l")
        strata = program.scheduler.strata()
        self.assertEqual(sorted(rule.name for rule in strata["recursive"]), ["l2r", "r2l"])
        self.assertEqual(strata["non_recursive"], [])


class TestIterationCutoff(unittest.TestCase):
    def _counter(self, max_iterations) -> Program:
        program = Program("counter", config=EngineConfig(max_iterations=max_iterations))
        nums = program.table("nums", Schema.parse(["n:integer"]))
        program.merge_now(nums, nums.map(lambda r: r.n + 1))
        program.insert(nums, [(0,)])
        return program

    def test_runaway_rule_raises(self) -> None:
        program = self._counter(5)
        with self.assertRaises(NonTerminatingFixpoint) as ctx:
            program.tick()
        self.assertEqual(ctx.exception.tick, 0)
        self.assertEqual(ctx.exception.iterations, 5)
        self.assertEqual(program.current_tick, 0)
        self.assertEqual(len(program["nums"]), 6)

    def test_bounded_rule_within_cutoff(self) -> None:
        program = Program("bounded", config=EngineConfig(max_iterations=20))
        nums = program.table("nums", Schema.parse(["n:integer"]))
        program.merge_now(nums, nums.map(lambda r: r.n + 1 if r.n < 10 else None))
        program.insert(nums, [(0,)])
        report = program.tick()
        self.assertEqual(len(nums), 11)
        self.assertEqual(report.iterations, 11)


class TestStagedEffects(unittest.TestCase):
    def test_next_tick_rules_stage_the_whole_fixpoint(self) -> None:
        program = Program("staged")
        edges = program.table("edges", EDGE)
        path = program.table("path", EDGE)
        seen = program.table("seen", Schema.parse(["hop:string"]))
        program.merge_now(path, edges.map(lambda e: (e.f, e.t)))
        program.merge_now(path, path.join(edges, lambda p, e: (p.f, e.t), on=[("t", "f")]))
        program.retract_then_merge(seen, path.map(lambda p: p.f + p.t))
        program.insert(edges, CHAIN)
        program.insert(seen, [("zz",)])
        program.tick()
        self.assertEqual(seen.values(), {("zz",)})
        program.tick()
        self.assertEqual(seen.values(), {("ab",), ("bc",), ("cd",), ("ac",), ("bd",), ("ad",)})

    def test_staged_batches_union(self) -> None:
        program = Program("union")
        src = program.table("src", Schema.parse(["v:string"]))
        dst = program.table("dst", Schema.parse(["v:string"]))
        program.merge_next(dst, src.map(lambda r: r.v))
        program.merge_next(dst, src.map(lambda r: r.v.upper()))
        program.insert(src, [("a",)])
        program.run(2)
        self.assertEqual(dst.values(), {("a",), ("A",)})

    def test_report_to_dict(self) -> None:
        program = closure_program()
        data = program.tick().to_dict()
        self.assertEqual(data["tick"], 0)
        self.assertEqual(data["changed"]["edges"]["added"], sorted(CHAIN))
        self.assertEqual(data["changed"]["edges"]["removed"], [])
        self.assertEqual(data["emitted"], 0)


if __name__ == "__main__":
    unittest.main()
