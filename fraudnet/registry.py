"""
FraudNet Ensemble - Node Registry
==================================

An explicit, constructed pipeline: ordered Stages of ScoringNodes plus the
decision node. Every node of a stage depends on the union of all earlier
stages, which ``interconnection_map`` makes auditable. There is no global
instance; build as many independent registries as needed.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .aggregators import STAGE_THREE_NODES
from .analyzers import STAGE_ONE_NODES
from .combiners import STAGE_TWO_NODES
from .decision import DECISION_NODE
from .exceptions import UnknownNodeError
from .node import NodeSpec, ScoringNode

DEFAULT_STAGES: Tuple[Tuple[str, str, Sequence[NodeSpec]], ...] = (
    ("layer1", "L1", STAGE_ONE_NODES),
    ("layer2", "L2", STAGE_TWO_NODES),
    ("layer3", "L3", STAGE_THREE_NODES),
)


@dataclass(frozen=True)
class Stage:
    name: str
    tag: str
    nodes: Tuple[ScoringNode, ...]

    @property
    def node_ids(self) -> List[str]:
        return [node.node_id for node in self.nodes]


class NodeRegistry:
    """Ordered stages plus the terminal decision node."""

    def __init__(self, stages: Sequence[Stage], decision: ScoringNode):
        seen = set()
        for stage in stages:
            if not stage.nodes:
                raise ValueError(f"Stage {stage.name!r} has no nodes")
            for node in stage.nodes:
                if node.node_id in seen:
                    raise ValueError(f"Duplicate node name: {node.node_id}")
                seen.add(node.node_id)
        if decision.node_id in seen:
            raise ValueError(f"Duplicate node name: {decision.node_id}")

        self.stages: Tuple[Stage, ...] = tuple(stages)
        self.decision = decision
        self._index: Dict[str, ScoringNode] = {node.node_id: node for node in self.iter_nodes()}

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._index

    def node(self, node_id: str) -> ScoringNode:
        try:
            return self._index[node_id]
        except KeyError:
            raise UnknownNodeError(node_id) from None

    def iter_nodes(self) -> Iterator[ScoringNode]:
        """Stage nodes in declaration order, then the decision node."""
        for stage in self.stages:
            yield from stage.nodes
        yield self.decision

    def all_nodes(self) -> List[ScoringNode]:
        return list(self.iter_nodes())

    def stage_of(self, node_id: str) -> str:
        for stage in self.stages:
            if node_id in stage.node_ids:
                return stage.name
        if node_id == self.decision.node_id:
            return "decision"
        raise UnknownNodeError(node_id)

    def network_versions(self) -> Dict[str, str]:
        return {node.node_id: node.version for node in self.iter_nodes()}

    # =========================================================================
    # TOPOLOGY
    # =========================================================================

    def interconnection_map(self) -> Dict[str, List[str]]:
        """node -> every node it reads: the union of all earlier stages."""
        connections = {}
        upstream: List[str] = []
        for stage in self.stages:
            for node_id in stage.node_ids:
                connections[node_id] = list(upstream)
            upstream.extend(stage.node_ids)
        connections[self.decision.node_id] = list(upstream)
        return connections

    def total_connections(self) -> int:
        return sum(len(inputs) for inputs in self.interconnection_map().values())

    def data_flow(self) -> List[str]:
        steps = ["Transaction"]
        for stage in self.stages:
            steps.append(f"{stage.name} ({stage.tag}, {len(stage.nodes)} nodes)")
        steps.append(self.decision.node_id)
        steps.append("Verdict")
        return steps

    def describe(self) -> Dict[str, Any]:
        return {
            "stages": [
                {"name": stage.name, "tag": stage.tag, "nodes": stage.node_ids}
                for stage in self.stages
            ],
            "decision": self.decision.node_id,
            "total_nodes": len(self),
            "trained_nodes": sum(1 for node in self.iter_nodes() if node.is_trained),
            "total_connections": self.total_connections(),
            "data_flow": self.data_flow(),
            "interconnections": self.interconnection_map(),
            "versions": self.network_versions(),
        }


def build_default_registry(
    node_params: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> NodeRegistry:
    """
    Fresh three-stage pipeline with independent node instances.

    ``node_params`` overrides per-node parameters by node name, e.g.
    ``{"amount": {"confidence": 0.9}}``.
    """
    node_params = node_params or {}
    stages = [
        Stage(
            name=name,
            tag=tag,
            nodes=tuple(spec.build(name, node_params.get(spec.name)) for spec in specs),
        )
        for name, tag, specs in DEFAULT_STAGES
    ]
    decision = DECISION_NODE.build("decision", node_params.get(DECISION_NODE.name))
    return NodeRegistry(stages, decision)
