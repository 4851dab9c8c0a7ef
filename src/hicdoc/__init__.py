"""HiCDOC: A/B compartment detection and differential analysis for Hi-C.

Clusters the replicate interaction profiles of every chromosome and
condition into two compartments with a constrained k-means, scores each
profile's concordance with its compartment, aligns and labels the
clusters as A or B across conditions, and tests which positions switch
compartment between conditions.

The interaction table is expected to be filtered and normalised already.
"""
from .errors import (
    HiCDOCError, InputError, ClusteringFailure,
    HarmonizationGap, SanityCheckFailure, UnitFailure,
)

# Configuration
from .parameters import (
    ParameterRegistry, DEFAULT_PARAMETERS, LEGACY_NAMES, from_legacy,
)

# Units & clustering
from .units import INTERACTION_COLUMNS, InteractionUnit, build_units, unit_seed
from .clustering import ClusteringResult, constrained_kmeans
from .concordance import centroid_distances, distance_ratio, concordance_scores
from .tables import ClusterTables, centroid_matrix

# Post-processing
from .harmonize import HarmonizedTables, harmonize, swap_needed, relabel
from .classify import (
    ClassifiedTables, classify, assign_ab, self_interaction_ratios,
    centroid_check, assignment_check, sanity_checks,
)
from .differences import (
    A_TO_B, B_TO_A, find_differences, concordance_differences,
    empirical_pvalues, adjust_pvalues, significant,
)

# Pipeline
from .pipeline import (
    CompartmentResults, UnitClustering,
    cluster_unit, run_units, detect_compartments,
)

# Example data
from .datasets import ExampleConfig, make_example_interactions

__all__ = [
    # Errors
    "HiCDOCError", "InputError", "ClusteringFailure",
    "HarmonizationGap", "SanityCheckFailure", "UnitFailure",
    # Configuration
    "ParameterRegistry", "DEFAULT_PARAMETERS", "LEGACY_NAMES", "from_legacy",
    # Units & clustering
    "INTERACTION_COLUMNS", "InteractionUnit", "build_units", "unit_seed",
    "ClusteringResult", "constrained_kmeans",
    "centroid_distances", "distance_ratio", "concordance_scores",
    "ClusterTables", "centroid_matrix",
    # Post-processing
    "HarmonizedTables", "harmonize", "swap_needed", "relabel",
    "ClassifiedTables", "classify", "assign_ab", "self_interaction_ratios",
    "centroid_check", "assignment_check", "sanity_checks",
    "A_TO_B", "B_TO_A", "find_differences", "concordance_differences",
    "empirical_pvalues", "adjust_pvalues", "significant",
    # Pipeline
    "CompartmentResults", "UnitClustering",
    "cluster_unit", "run_units", "detect_compartments",
    # Example data
    "ExampleConfig", "make_example_interactions",
]

__version__ = "0.1.0"
