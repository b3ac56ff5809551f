"""
Sparse adjacency encoding for intrinsic autoregressive (IAR) priors.

A neighbor relation over N regions is reduced to per-region neighbor counts
and a list of undirected links (i, j) with i < j, optionally carrying a
positive weight per link. The encoding is derived once, before sampling
starts, and is shared read-only by every density evaluation afterwards.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import sparse
from scipy.sparse import csgraph

from .exceptions import InvalidGraph

logger = logging.getLogger(__name__)

NeighborEntry = Union[Iterable[Hashable], Mapping[Hashable, float]]
NeighborRelation = Union[Mapping[Hashable, NeighborEntry], Sequence[NeighborEntry]]


def _read_only(array: np.ndarray) -> np.ndarray:
    array.setflags(write=False)
    return array


@dataclass(frozen=True)
class EncoderConfig:
    """
    Options controlling how a neighbor relation is turned into an encoding.

    Attributes:
        symmetrize: Add missing reverse links instead of rejecting an
            asymmetric relation
        require_neighbors: Reject regions without neighbors. Only disable
            this to inspect a raw graph; the IAR evaluator still refuses
            islands.
    """
    symmetrize: bool = False
    require_neighbors: bool = True


@dataclass(frozen=True, eq=False)
class SparseAdjacency:
    """
    Immutable sparse encoding of an undirected neighbor graph.

    Attributes:
        n_regions: Number of regions N
        neighbor_count: Number of neighbors of each region, shape (N,)
        node1: First endpoint of each link, shape (L,)
        node2: Second endpoint of each link, node1 < node2 elementwise
        weights: Link weights c_ij, all 1.0 for the uniform case
        diagonal_weight: Sum of link weights touching each region; equals
            neighbor_count when the graph is unweighted
        n_components: Number of connected components k
        component_labels: Component index of each region, shape (N,)
        region_ids: Label of each region, in index order
    """
    n_regions: int
    neighbor_count: np.ndarray
    node1: np.ndarray
    node2: np.ndarray
    weights: np.ndarray
    diagonal_weight: np.ndarray
    n_components: int
    component_labels: np.ndarray
    region_ids: Tuple[Hashable, ...]

    @property
    def n_edges(self) -> int:
        return int(self.node1.shape[0])

    @property
    def is_weighted(self) -> bool:
        return bool(np.any(self.weights != 1.0))

    @property
    def links(self) -> List[Tuple[int, int]]:
        """Links as a list of (i, j) index pairs with i < j."""
        return list(zip(self.node1.tolist(), self.node2.tolist()))

    def neighbors(self, region: int) -> List[int]:
        """Sorted neighbor indices of a region."""
        if not 0 <= region < self.n_regions:
            raise IndexError(f"Region index {region} out of range for {self.n_regions} regions")
        found = np.concatenate([self.node2[self.node1 == region],
                                self.node1[self.node2 == region]])
        return sorted(found.tolist())

    def component_sizes(self) -> np.ndarray:
        """Number of regions in each connected component."""
        return np.bincount(self.component_labels, minlength=self.n_components)

    def weight_matrix(self) -> sparse.csr_matrix:
        """Symmetric weight matrix W with W[i, j] = c_ij for every link."""
        n = self.n_regions
        rows = np.concatenate([self.node1, self.node2])
        cols = np.concatenate([self.node2, self.node1])
        data = np.concatenate([self.weights, self.weights])
        return sparse.csr_matrix((data, (rows, cols)), shape=(n, n))

    def precision_structure(self) -> sparse.csr_matrix:
        """
        IAR precision matrix at unit precision, Q = D - W.

        Rows sum to zero, so Q has rank N - k.
        """
        return sparse.csr_matrix(sparse.diags(self.diagonal_weight) - self.weight_matrix())

    def to_frame(self) -> pd.DataFrame:
        """Links as a DataFrame with index and label columns."""
        labels = np.empty(self.n_regions, dtype=object)
        labels[:] = list(self.region_ids)
        return pd.DataFrame({
            'node1': self.node1,
            'node2': self.node2,
            'region1': labels[self.node1],
            'region2': labels[self.node2],
            'weight': self.weights,
        })

    def validate(self) -> 'SparseAdjacency':
        """
        Re-check every invariant of the encoding.

        Returns:
            The encoding itself, so calls can be chained

        Raises:
            InvalidGraph: If any invariant is violated
        """
        n = self.n_regions
        if self.neighbor_count.shape != (n,) or self.diagonal_weight.shape != (n,):
            raise InvalidGraph(f"Per-region arrays must have shape ({n},)")
        if not (self.node1.shape == self.node2.shape == self.weights.shape):
            raise InvalidGraph("Link arrays node1, node2 and weights differ in length")
        if np.any(self.node1 >= self.node2):
            raise InvalidGraph("Every link must satisfy node1 < node2")
        if self.n_edges and (self.node1.min() < 0 or self.node2.max() >= n):
            raise InvalidGraph(f"Link endpoint out of range for {n} regions")
        keys = self.node1 * n + self.node2
        if np.unique(keys).size != keys.size:
            raise InvalidGraph("Duplicate links in encoding")
        if int(self.neighbor_count.sum()) != 2 * self.n_edges:
            raise InvalidGraph(
                f"Neighbor counts sum to {int(self.neighbor_count.sum())}, "
                f"expected 2 * {self.n_edges}"
            )
        counts = (np.bincount(self.node1, minlength=n) +
                  np.bincount(self.node2, minlength=n))
        if not np.array_equal(counts, self.neighbor_count):
            raise InvalidGraph("Neighbor counts disagree with links")
        _check_weights(self.weights)
        expected = (np.bincount(self.node1, weights=self.weights, minlength=n) +
                    np.bincount(self.node2, weights=self.weights, minlength=n))
        if not np.allclose(expected, self.diagonal_weight):
            raise InvalidGraph("Diagonal weights disagree with link weights")
        return self


class AdjacencyEncoder:
    """
    Converts neighbor relations into SparseAdjacency encodings.

    Every failure is raised eagerly as InvalidGraph so that malformed
    upstream data is caught before any sampling starts.
    """

    def __init__(self, config: Optional[EncoderConfig] = None):
        """
        Initialize the encoder.

        Args:
            config: Encoding options (default: reject asymmetric relations
                and regions without neighbors)
        """
        self.config = config or EncoderConfig()

    def encode(self, relation: NeighborRelation,
               regions: Optional[Sequence[Hashable]] = None) -> SparseAdjacency:
        """
        Encode a neighbor relation.

        Args:
            relation: Either a mapping from region label to its neighbors, or
                a sequence of neighbor collections indexed by position. Each
                neighbor collection is an iterable of labels or a mapping
                from neighbor label to link weight.
            regions: Region labels in index order. Defaults to the mapping's
                key order, or to 0..N-1 for a sequence.

        Returns:
            The sparse encoding

        Raises:
            InvalidGraph: If the relation is asymmetric, reflexive, refers
                to unknown regions or leaves a region without neighbors
        """
        if isinstance(relation, Mapping):
            labels = list(relation.keys()) if regions is None else list(regions)
            known = set(labels)
            extra = [label for label in relation if label not in known]
            if extra:
                raise InvalidGraph(f"Relation lists regions outside the region set: {extra[:5]}")
            missing = [label for label in labels if label not in relation]
            if missing:
                raise InvalidGraph(f"Regions missing from the relation: {missing[:5]}")
            entries = [relation[label] for label in labels]
        else:
            entries = list(relation)
            labels = list(range(len(entries))) if regions is None else list(regions)
            if len(labels) != len(entries):
                raise InvalidGraph(
                    f"Got {len(labels)} region labels for {len(entries)} neighbor lists"
                )

        index = {label: i for i, label in enumerate(labels)}
        if len(index) != len(labels):
            raise InvalidGraph("Region labels must be unique")

        rows = []
        for i, (label, entry) in enumerate(zip(labels, entries)):
            row: Dict[int, float] = {}
            pairs = entry.items() if isinstance(entry, Mapping) else ((nb, 1.0) for nb in entry)
            for neighbor, weight in pairs:
                if neighbor not in index:
                    raise InvalidGraph(f"Region {label!r} lists unknown neighbor {neighbor!r}")
                j = index[neighbor]
                if j == i:
                    raise InvalidGraph(f"Region {label!r} lists itself as a neighbor")
                weight = float(weight)
                if j in row and row[j] != weight:
                    raise InvalidGraph(
                        f"Region {label!r} lists neighbor {neighbor!r} with conflicting weights"
                    )
                row[j] = weight
            rows.append(row)

        return self._encode_rows(rows, labels)

    def from_matrix(self, matrix: Union[np.ndarray, sparse.spmatrix],
                    regions: Optional[Sequence[Hashable]] = None) -> SparseAdjacency:
        """
        Encode a square adjacency or weight matrix.

        Nonzero off-diagonal entries are links; their values are weights.

        Args:
            matrix: Dense array or scipy sparse matrix of shape (N, N)
            regions: Region labels in index order (default: 0..N-1)

        Returns:
            The sparse encoding
        """
        W = sparse.csr_matrix(matrix, dtype=np.float64)
        if W.shape[0] != W.shape[1]:
            raise InvalidGraph(f"Adjacency matrix must be square, got shape {W.shape}")
        W.eliminate_zeros()
        n = W.shape[0]
        labels = list(range(n)) if regions is None else list(regions)
        if len(labels) != n:
            raise InvalidGraph(f"Got {len(labels)} region labels for a {n}x{n} matrix")
        if np.any(W.diagonal() != 0):
            raise InvalidGraph("Adjacency matrix has nonzero diagonal entries (self-neighbors)")

        rows = []
        for i in range(n):
            start, stop = W.indptr[i], W.indptr[i + 1]
            rows.append(dict(zip(W.indices[start:stop].tolist(),
                                 W.data[start:stop].tolist())))
        return self._encode_rows(rows, labels)

    def from_node_arrays(self, n_regions: int, node1: Sequence[int], node2: Sequence[int],
                         weights: Optional[Sequence[float]] = None,
                         one_based: bool = False,
                         regions: Optional[Sequence[Hashable]] = None) -> SparseAdjacency:
        """
        Re-derive an encoding from parallel edge arrays.

        Pairs are normalised so that node1 < node2. Each undirected edge
        must appear once.

        Args:
            n_regions: Number of regions N
            node1: First endpoint of each edge
            node2: Second endpoint of each edge
            weights: Optional per-edge weights (default 1.0)
            one_based: Endpoints are numbered from 1, as in sampler data
            regions: Region labels in index order (default: 0..N-1)

        Returns:
            The sparse encoding
        """
        n = int(n_regions)
        a = np.asarray(node1, dtype=np.int64).ravel()
        b = np.asarray(node2, dtype=np.int64).ravel()
        if a.shape != b.shape:
            raise InvalidGraph(f"node1 and node2 differ in length: {a.size} != {b.size}")
        if weights is None:
            w = np.ones(a.size, dtype=np.float64)
        else:
            w = np.asarray(weights, dtype=np.float64).ravel()
            if w.shape != a.shape:
                raise InvalidGraph(f"Got {w.size} weights for {a.size} edges")
        if one_based:
            a = a - 1
            b = b - 1
        if a.size and (min(a.min(), b.min()) < 0 or max(a.max(), b.max()) >= n):
            raise InvalidGraph(f"Edge endpoint out of range for {n} regions")
        if np.any(a == b):
            raise InvalidGraph(f"Self-links at regions {np.unique(a[a == b]).tolist()[:5]}")

        lo = np.minimum(a, b)
        hi = np.maximum(a, b)
        keys = lo * n + hi
        unique_keys, counts = np.unique(keys, return_counts=True)
        if np.any(counts > 1):
            dup = unique_keys[counts > 1][0]
            raise InvalidGraph(f"Duplicate edge ({dup // n}, {dup % n})")

        labels = list(range(n)) if regions is None else list(regions)
        if len(labels) != n:
            raise InvalidGraph(f"Got {len(labels)} region labels for {n} regions")
        return _build_encoding(n, lo, hi, w, labels, self.config.require_neighbors)

    def _encode_rows(self, rows: List[Dict[int, float]],
                     labels: List[Hashable]) -> SparseAdjacency:
        """Emit each undirected edge once from per-region neighbor rows."""
        edges: Dict[Tuple[int, int], float] = {}
        added = 0
        for i, row in enumerate(rows):
            for j, weight in row.items():
                key = (i, j) if i < j else (j, i)
                if key in edges:
                    continue
                back = rows[j].get(i)
                if back is None:
                    if not self.config.symmetrize:
                        raise InvalidGraph(
                            f"Neighbor relation is asymmetric: {labels[j]!r} is listed as a "
                            f"neighbor of {labels[i]!r} but not vice versa"
                        )
                    added += 1
                elif back != weight:
                    raise InvalidGraph(
                        f"Asymmetric link weight between {labels[i]!r} and {labels[j]!r}: "
                        f"{weight} != {back}"
                    )
                edges[key] = weight

        if added:
            logger.warning(f"Symmetrized neighbor relation: added {added} missing reverse links")

        ordered = sorted(edges)
        node1 = np.array([i for i, _ in ordered], dtype=np.int64)
        node2 = np.array([j for _, j in ordered], dtype=np.int64)
        weights = np.array([edges[key] for key in ordered], dtype=np.float64)
        return _build_encoding(len(rows), node1, node2, weights, labels,
                               self.config.require_neighbors)


def _check_weights(weights: np.ndarray):
    bad = ~np.isfinite(weights) | (weights <= 0)
    if np.any(bad):
        raise InvalidGraph(f"Link weights must be positive and finite, got {weights[bad][:5].tolist()}")


def _build_encoding(n_regions: int, node1: np.ndarray, node2: np.ndarray,
                    weights: np.ndarray, labels: List[Hashable],
                    require_neighbors: bool) -> SparseAdjacency:
    if n_regions < 1:
        raise InvalidGraph("Neighbor relation must cover at least one region")
    _check_weights(weights)

    order = np.lexsort((node2, node1))
    node1 = node1[order]
    node2 = node2[order]
    weights = weights[order]

    neighbor_count = (np.bincount(node1, minlength=n_regions) +
                      np.bincount(node2, minlength=n_regions)).astype(np.int64)
    if require_neighbors:
        islands = np.flatnonzero(neighbor_count == 0)
        if islands.size:
            raise InvalidGraph(
                f"{islands.size} region(s) have no neighbors: "
                f"{[labels[i] for i in islands[:10]]}"
            )

    diagonal_weight = (np.bincount(node1, weights=weights, minlength=n_regions) +
                       np.bincount(node2, weights=weights, minlength=n_regions))

    graph = sparse.csr_matrix((np.ones(node1.size), (node1, node2)),
                              shape=(n_regions, n_regions))
    n_components, component_labels = csgraph.connected_components(graph, directed=False)

    adjacency = SparseAdjacency(
        n_regions=n_regions,
        neighbor_count=_read_only(neighbor_count),
        node1=_read_only(node1),
        node2=_read_only(node2),
        weights=_read_only(weights),
        diagonal_weight=_read_only(diagonal_weight),
        n_components=int(n_components),
        component_labels=_read_only(component_labels.astype(np.int64)),
        region_ids=tuple(labels),
    )

    logger.info(
        f"Encoded {n_regions} regions with {adjacency.n_edges} links "
        f"({adjacency.n_components} component(s), "
        f"{'weighted' if adjacency.is_weighted else 'unweighted'})"
    )
    if adjacency.n_components > 1:
        logger.warning(
            f"Neighbor graph is disconnected into {adjacency.n_components} components; "
            f"the IAR prior has rank {n_regions - adjacency.n_components}"
        )
    return adjacency


def encode_neighbors(relation: NeighborRelation,
                     regions: Optional[Sequence[Hashable]] = None,
                     symmetrize: bool = False) -> SparseAdjacency:
    """Encode a neighbor relation with default options."""
    return AdjacencyEncoder(EncoderConfig(symmetrize=symmetrize)).encode(relation, regions)
