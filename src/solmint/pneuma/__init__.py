"""
Pneuma - On-chain interaction layer for solmint.

Provides the JSON-RPC client, transaction building and submission, and
instruction helpers for the SPL Token and Token Metadata programs.

Uses httpx for JSON-RPC and solders for keys, messages and signing instead
of a full client SDK.
"""
