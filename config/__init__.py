"""Miner configuration: schema and loader."""
