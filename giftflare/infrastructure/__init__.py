"""Infrastructure layer module.

Contains persistence, provider clients, configuration, logging and metrics.
"""
