"""
Civic Store - data-access and workflow layer for a civic-advocacy platform.

This package sits between the web application and its document store:
- Tiered reads that keep working while composite indexes are provisioned
- Append-only, deduplicated petition signature ledgers
- Sequential membership numbers (DC-<year>-<seq>)
- Review workflows for applications and the referral funnel
- Message drafts and batched post-send bookkeeping

Architecture:
    HTTP API / callers
          │
          ▼
    Ledger · Workflows · Drafts · Batch
          │
          ▼
    Entity repositories ──▶ Tiered query executor
          │                          │
          ▼                          ▼
    ┌──────────────────────────────────────┐
    │ DocumentStore (in-memory / SQLite)   │
    └──────────────────────────────────────┘

Invariants:
    - currentSignatures always equals the number of stored signatures
    - One signature per email (case-insensitive) and per user on a petition
    - Membership numbers are unique
    - Referrals only move forward

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
