"""
Tests package - Unit test suite for the ArgoCD operator.

Contains:
- unit/: Unit tests for individual components
- fixtures/: Test data and mock resources
- utils/: In-memory object store used by the unit tests
"""
