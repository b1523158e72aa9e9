"""
Grant Ingest - extraction ingestion pipeline for grant opportunities.

Architecture:
- core/: Stable foundation (models, field normalizer, HTTP client)
- extraction/: Upstream agent client, event-stream scan, response parser
- storage/: Dedupe & upsert stores (SQLite, Supabase)
- config/: YAML + environment settings
- orchestrator.py: Run coordination and status classification
- server.py: Inbound trigger endpoint
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
