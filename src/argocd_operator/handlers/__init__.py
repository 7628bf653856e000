"""
Handlers package - Contains the Kopf event handlers for ArgoCD resources.

- argocd.py: credential and certificate reconciliation for ArgoCD instances
"""
