"""
Settings for the DP engines (base.yaml + pydantic schema).
"""
