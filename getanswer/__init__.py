"""
GetAnswer - Source Package

Turns a photographed question into an AI-generated answer,
paid for with a client-local credit balance.

DESIGN PRINCIPLES:
1. Charge only immediately before the step being paid for
2. Any failure downstream of a charge is refunded before it is reported
3. Every balance change has exactly one transaction record
4. Retries are driven by the caller, never by the pipeline
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "GetAnswer Team"
