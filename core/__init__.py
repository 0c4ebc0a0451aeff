"""Core module - configuration and observability shared by every layer.

Source-specific logic (legacy database, ERP HTTP API) belongs in /connectors/.
Reconciliation logic belongs in /reconciliation/.
"""

__version__ = "1.0.0"
