"""
Core module for the SignStream recognition pipeline.

Contains the callback registry, typed events, the temporal window, tensor
assembly, prediction filters, the correlation table, pipeline stages and
protocol definitions (interfaces) for the external detector and classifier.
"""
