"""Core resilience, provider and orchestration logic for raidbot."""
