"""
Browser-driven scraping: instruction model, engine, frames, policy and orchestration.
"""
