"""Kubernetes apply, delete, and job wait tools across configured clusters, served over MCP."""
