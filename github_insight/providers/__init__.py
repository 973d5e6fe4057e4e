"""Outbound GraphQL executors."""
