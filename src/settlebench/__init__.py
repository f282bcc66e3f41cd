"""
settlebench - Settle-aware UI benchmarking.

Generate seeded workloads, wait for targets to settle, compare medians.
"""

from settlebench.workload import create_stream, generate_rows, mutate_rows_fraction

__version__ = "0.1.0"
__all__ = ["create_stream", "generate_rows", "mutate_rows_fraction", "__version__"]
