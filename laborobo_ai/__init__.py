"""Laborobo AI: permissioned agent tooling and checkpointed agent workflows."""
