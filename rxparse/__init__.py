"""Prescription parser service: job registry, pipelines, sample store and API.

Documents are parsed asynchronously by an LLM extraction backend (see the
top-level `ai` package); callers poll the job registry for results.
"""
