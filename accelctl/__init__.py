"""Reconciliation of global accelerators, load balancer endpoints and DNS records for cluster resources."""

__version__ = "0.1.0"