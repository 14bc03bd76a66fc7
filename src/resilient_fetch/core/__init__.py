"""Core request pipeline for resilient-fetch: errors, policies, materialization."""
