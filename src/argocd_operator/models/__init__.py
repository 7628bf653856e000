"""
Models package - Pydantic models for type-safe resource handling.

Defines data models for:
- ArgoCD instance specification and status
- Cluster capability flags
"""
