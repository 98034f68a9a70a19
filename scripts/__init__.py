"""
Maintenance Scripts

Available scripts:
    - seed_data.py: Creates a demo directory and a sample ticket schema

Usage:
    python -m scripts.seed_data
"""
