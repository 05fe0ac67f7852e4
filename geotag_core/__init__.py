"""
Fine Geotag Core Package.

Resolves a corrected geographic position for captured images by arbitrating
between coarse (network) and fine (GPS) position fixes under a time budget.

Package structure:
- geoid: EGM96 undulation grid lookup and altitude correction
- proto: Location sample value type and its persisted text encoding
- localization: Candidate arbitration and the per-target arbitration engine
- io: Collaborators (candidate store, deadline scheduler, position source)
- domain: Downstream dispatch of finalized geotags
- metrics: Diagnostics, counters, histograms
"""

__version__ = "0.1.0"
__author__ = "FineGeotag Team"
