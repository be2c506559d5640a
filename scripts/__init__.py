"""
StepFlow maintenance scripts.

    - seed_data.py: seeds sample identities and the "Sample Request" workflow into MongoDB

Usage:
    python -m scripts.seed_data
"""
