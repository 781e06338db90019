"""Names and colors: next-tick merges, a join and console output.

Run with ``python -m tickflow.examples.hello`` or as a script.
"""

from __future__ import annotations

from typing import Optional

from tickflow import ConstExpr, EngineConfig, Program, Schema, configure_logging
from tickflow.io.sinks import Sink


def build(sink: Optional[Sink] = None) -> Program:
    program = Program("hello", sink=sink)
    peeps = program.table("peeps", Schema.parse(["name:string", "id:integer", "color:string"]))
    names = program.table("names", Schema.parse(["name:string"]))
    program.table("colors", Schema.parse(["name:string", "color:string"]))
    program.table("result", Schema.parse(["bar", "blue"]))

    program.merge_next("names", peeps.project("name"))
    program.merge_next(
        "colors",
        (peeps * names).pairs(
            lambda p, n: (p.name, p.color) if p.name == n.name else None,
            on=[("name", "name")],
        ),
    )
    program.merge_next("result", ConstExpr([("a", "b")]))
    program.send(program.stdio, names.map(lambda n: f"Hello {n.name}"))
    return program


def main(sink: Optional[Sink] = None) -> Program:
    configure_logging(EngineConfig.from_env())
    program = build(sink)
    program.insert("peeps", [("george", 5, "green")])
    program.run(2)
    program.stage("peeps", [("yolanda", 11, "yellow")])
    program.run(3)
    for name in ("names", "colors", "result"):
        print(f"{name}: {[tuple(row) for row in program[name].rows()]}")
    return program


if __name__ == "__main__":
    main()
