# Clustering engine: distances, Ward tree, tree cutting, label alignment

from .distance import compute_distance_matrix
from .linkage import MergeTree, ward_linkage
from .tree_cut import cut_tree
from .alignment import AlignmentResult, align_clusters_to_labels, solve_assignment

__all__ = [
    'compute_distance_matrix',
    'MergeTree',
    'ward_linkage',
    'cut_tree',
    'AlignmentResult',
    'align_clusters_to_labels',
    'solve_assignment',
]
