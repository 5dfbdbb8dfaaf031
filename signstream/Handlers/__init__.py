"""
Adapters for external collaborators: frame sources, the hand-landmark
detector and the sign classifier.
"""
