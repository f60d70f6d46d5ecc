"""sdk - shared building blocks for MemVerse services

Contains reusable modules for:
    - logging: Structured hierarchical logging with delivery context
"""

__version__ = "1.0.0"
__versionInfo__ = (1, 0, 0)
