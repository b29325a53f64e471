"""
VoteCounter Colors Module

Per-class palette training, nearest-neighbor pixel classification and
palette swatch rendering.
"""
