"""
Storage and interchange formats for adjacency encodings.

An encoding is stored as an array of N neighbor counts plus an L x 2 array
of links (L x 3 when the links carry weights). The same content, with
1-based node numbering, is what a sampler expects as static model data.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Hashable, List, Optional, Sequence, Union

import numpy as np

from .adjacency import AdjacencyEncoder, EncoderConfig, SparseAdjacency
from .exceptions import InvalidGraph

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _jsonable(label: Hashable) -> Any:
    if isinstance(label, np.generic):
        return label.item()
    if isinstance(label, tuple):
        return [_jsonable(part) for part in label]
    return label


def _hashable(label: Any) -> Hashable:
    if isinstance(label, list):
        return tuple(_hashable(part) for part in label)
    return label


def links_array(adjacency: SparseAdjacency, with_weights: Optional[bool] = None) -> np.ndarray:
    """
    Links as an L x 2 integer array, or L x 3 float array with weights.

    Args:
        adjacency: Encoding to export
        with_weights: Append the weight column (default: only if weighted)
    """
    if with_weights is None:
        with_weights = adjacency.is_weighted
    if with_weights:
        return np.column_stack([adjacency.node1, adjacency.node2,
                                adjacency.weights]).reshape(-1, 3)
    return np.column_stack([adjacency.node1, adjacency.node2]).reshape(-1, 2)


def to_sampler_data(adjacency: SparseAdjacency, one_based: bool = True) -> Dict[str, Any]:
    """
    Static data block describing the graph to an external sampler.

    Args:
        adjacency: Encoding to export
        one_based: Number regions from 1, as Stan and BUGS expect

    Returns:
        Dictionary with N, N_edges, node1, node2 and, for weighted graphs,
        weights
    """
    offset = 1 if one_based else 0
    data = {
        'N': adjacency.n_regions,
        'N_edges': adjacency.n_edges,
        'node1': adjacency.node1 + offset,
        'node2': adjacency.node2 + offset,
    }
    if adjacency.is_weighted:
        data['weights'] = np.array(adjacency.weights)
    return data


def save_adjacency(adjacency: SparseAdjacency, path: PathLike) -> Path:
    """
    Save an encoding as .npz or .json, chosen by file suffix.

    Args:
        adjacency: Encoding to save
        path: Destination file

    Returns:
        The path written
    """
    path = Path(path)
    region_ids = [_jsonable(label) for label in adjacency.region_ids]

    if path.suffix == '.npz':
        np.savez(path,
                 neighbor_count=adjacency.neighbor_count,
                 links=links_array(adjacency),
                 region_ids=np.array(json.dumps(region_ids)))
    elif path.suffix == '.json':
        payload = {
            'n_regions': adjacency.n_regions,
            'neighbor_count': adjacency.neighbor_count.tolist(),
            'links': [[i, j] for i, j in adjacency.links],
            'weights': adjacency.weights.tolist() if adjacency.is_weighted else None,
            'region_ids': region_ids,
        }
        with open(path, 'w') as f:
            json.dump(payload, f, indent=2)
    else:
        raise ValueError(f"Unsupported adjacency format: {path.suffix!r} (use .npz or .json)")

    logger.info(f"Adjacency with {adjacency.n_regions} regions saved to {path}")
    return path


def load_adjacency(path: PathLike, encoder: Optional[AdjacencyEncoder] = None) -> SparseAdjacency:
    """
    Load an encoding written by save_adjacency.

    The links are re-encoded from scratch and the stored neighbor counts are
    checked against them.

    Raises:
        InvalidGraph: If the stored counts disagree with the stored links
    """
    path = Path(path)
    encoder = encoder or AdjacencyEncoder()

    if path.suffix == '.npz':
        with np.load(path) as data:
            neighbor_count = np.asarray(data['neighbor_count'], dtype=np.int64)
            links = np.asarray(data['links'])
            region_ids = json.loads(str(data['region_ids']))
        weights = links[:, 2] if links.shape[1] == 3 else None
        node1 = links[:, 0].astype(np.int64)
        node2 = links[:, 1].astype(np.int64)
    elif path.suffix == '.json':
        with open(path) as f:
            payload = json.load(f)
        neighbor_count = np.asarray(payload['neighbor_count'], dtype=np.int64)
        links = np.asarray(payload['links'], dtype=np.int64).reshape(-1, 2)
        node1, node2 = links[:, 0], links[:, 1]
        weights = payload.get('weights')
        region_ids = payload['region_ids']
    else:
        raise ValueError(f"Unsupported adjacency format: {path.suffix!r} (use .npz or .json)")

    adjacency = encoder.from_node_arrays(
        neighbor_count.size, node1, node2, weights=weights,
        regions=[_hashable(label) for label in region_ids],
    )
    if not np.array_equal(adjacency.neighbor_count, neighbor_count):
        raise InvalidGraph(f"Stored neighbor counts in {path} disagree with stored links")
    return adjacency


def from_nb_list(nb: Sequence[Sequence[int]],
                 regions: Optional[Sequence[Hashable]] = None,
                 config: Optional[EncoderConfig] = None) -> SparseAdjacency:
    """
    Encode an R spdep-style neighbor list.

    Region i (1-based) lists its neighbors as 1-based indices; a list
    holding the single entry 0 marks a region without neighbors.

    Args:
        nb: One neighbor list per region
        regions: Region labels in index order (default: 0..N-1)
        config: Encoder options
    """
    relation: List[List[int]] = []
    for entry in nb:
        indices = [int(j) for j in entry]
        if indices == [0]:
            indices = []
        relation.append([j - 1 for j in indices])
    return AdjacencyEncoder(config).encode(relation, regions)
