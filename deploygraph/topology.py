from typing import TYPE_CHECKING

from networkx import generate_network_text

if TYPE_CHECKING:  # pragma: no cover
    from networkx import DiGraph


class Topology:
    def __init__(self, *, digraph: "DiGraph", order: list[str]) -> None:
        self.digraph = digraph
        # dependencies first
        self.order = order

    def __str__(self) -> str:
        return "\n".join(generate_network_text(self.digraph, vertical_chains=True))
