"""Graph reachability with a keyed table and retract-then-merge.

``nodes`` is keyed by name, so each ``<+-`` batch replaces the reachable flag
of the nodes it names. The program settles once no tick changes any flag.
"""

from __future__ import annotations

from typing import Optional

from tickflow import EngineConfig, Program, Schema, configure_logging
from tickflow.io.sinks import Sink


NODES = [("a", True), ("b", False), ("c", False), ("d", False), ("e", False)]
EDGES = [("a", "b"), ("a", "c"), ("c", "d"), ("d", "c"), ("e", "c")]


def build(sink: Optional[Sink] = None, config: Optional[EngineConfig] = None) -> Program:
    program = Program("reachability", sink=sink, config=config)
    nodes = program.table("nodes", Schema.keyed(["name:string"], ["reachable:boolean"]))
    edges = program.table("edges", Schema.parse(["f:string", "t:string"]))

    program.retract_then_merge(
        nodes,
        (nodes * edges).pairs(
            lambda n, e: (e.t, True) if n.reachable and n.name == e.f else None,
            on=[("name", "f")],
        ),
        name="propagate",
    )
    program.send(program.stdio, nodes.map(lambda n: f"{n.name} => {n.reachable}"))
    return program


def main(sink: Optional[Sink] = None) -> Program:
    config = EngineConfig.from_env()
    configure_logging(config)
    program = build(sink, config)
    program.insert("nodes", NODES)
    program.insert("edges", EDGES)
    reports = program.run_until_quiescent(max_ticks=20)
    print()
    print(f"Final output after {len(reports)} ticks:")
    for row in program["nodes"].rows():
        print(f"  {row.name} => {row.reachable}")
    return program


if __name__ == "__main__":
    main()
