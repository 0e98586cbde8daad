"""Monorepo dependency graph and BUILD file manager."""
