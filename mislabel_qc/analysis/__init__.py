"""
Analysis Module

Cluster/label agreement analysis. The end-to-end workflow lives in
`mislabel_qc.analysis.mislabel_detector`.
"""

from .cluster_analysis import ClusterAnalysisResult, RawFeatureMatrix, analyze
from .misclassification import MisclassificationReport, build_misclassification_report

__all__ = [
    'ClusterAnalysisResult',
    'MisclassificationReport',
    'RawFeatureMatrix',
    'analyze',
    'build_misclassification_report',
]
