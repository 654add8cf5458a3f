"""
Engagement Engine backend package.

Decision and allocation pipeline for healthcare-provider (HCP) outreach:
per-channel health classification, next-best-action selection with a
message-saturation overlay, multi-dimensional constraint validation, and the
execution-plan state machine that books, runs, monitors and rebalances batches
of allocations.
"""

__version__ = "1.0.0"
