"""Removal pipeline: guarded transactional steps and the orchestrator that sequences them."""
