"""
Land Verifier — reconciles extracted identity, tax and land-certificate
fields against canonical records, scores the risk, and resolves land
coordinates.

Architecture: Lookup → Field comparison → Risk scoring → Single-result upsert
Philosophy:  Unknown is not a mismatch. A store outage is not unknown.
"""

__version__ = "1.0.0"
