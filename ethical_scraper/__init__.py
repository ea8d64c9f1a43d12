"""
Ethical, configuration-driven web scraping engine and scheduling service.
"""
