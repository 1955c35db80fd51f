"""
Studio OS: governed control plane for studio operations.

Recomputes derived studio state, flags drift and anomalies, drafts
recommendations, and runs approved actions through an audited,
idempotent proposal lifecycle.
"""

__version__ = "0.1.0"
