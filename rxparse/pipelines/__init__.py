"""Pipelines for document extraction, sample ingestion and result scoring.

Each step is callable on its own: the HTTP API uses extraction and sample
ingestion, the evaluation harness uses extraction and scoring.
"""
