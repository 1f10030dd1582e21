"""Cluster models produced by community detection."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Cluster:
    """
    A topical community from one detection run.

    Cluster ids are only stable within a single run; a new run supersedes
    the previous clusters rather than mutating them.
    """

    id: int
    members: frozenset[str]  # Node ids
    hub: str  # Node id of the highest-degree member
    hub_label: str
    member_labels: tuple[str, ...] = ()
    is_peripheral: bool = False

    @property
    def size(self) -> int:
        return len(self.members)

    def sorted_keywords(self) -> list[str]:
        """Canonical sorted member-label list."""
        return sorted(self.member_labels)


@dataclass
class ClusterResult:
    """Result of a community detection run."""

    node_to_cluster: dict[str, int] = field(default_factory=dict)
    clusters: dict[int, Cluster] = field(default_factory=dict)
    resolution: float | None = None

    def coverage(self, node_ids: set[str]) -> float:
        """Fraction of the given node ids that have a cluster assignment."""
        if not node_ids:
            return 1.0
        covered = sum(1 for nid in node_ids if nid in self.node_to_cluster)
        return covered / len(node_ids)

    def to_dict(self) -> dict:
        """Plain cluster map, safe to hand across a thread boundary."""
        return {
            "resolution": self.resolution,
            "node_to_cluster": dict(self.node_to_cluster),
            "clusters": {
                cid: {
                    "members": sorted(c.members),
                    "hub": c.hub,
                    "hub_label": c.hub_label,
                    "member_labels": list(c.member_labels),
                    "is_peripheral": c.is_peripheral,
                }
                for cid, c in self.clusters.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ClusterResult":
        """Create from a plain cluster map (e.g. a precomputed clustering)."""
        clusters: dict[int, Cluster] = {}
        for raw_id, raw in data.get("clusters", {}).items():
            cid = int(raw_id)
            members = frozenset(raw["members"])
            clusters[cid] = Cluster(
                id=cid,
                members=members,
                hub=raw["hub"],
                hub_label=raw.get("hub_label", raw["hub"]),
                member_labels=tuple(raw.get("member_labels", ())),
                is_peripheral=bool(raw.get("is_peripheral", False)),
            )
        return cls(
            node_to_cluster={k: int(v) for k, v in data.get("node_to_cluster", {}).items()},
            clusters=clusters,
            resolution=data.get("resolution"),
        )
