"""
SignStream: streaming sign language recognition from hand landmarks.
"""
__version__ = "0.1.0"
