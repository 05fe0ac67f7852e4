"""
Fine geotag configuration
"""

# Geoid dataset (EGM96 15' grid, 721 x 1440 big-endian int16, centimeters)
GEOID_CONFIG = {
    "dataset_path": "data/WW15MGH.DAC",
}

# When a target's arbitration may stop waiting
COMPLETION_CONFIG = {
    "require_altitude": True,           # Never finalize a location without altitude
    "max_acceptable_accuracy_m": 50.0,  # Finalize as soon as accuracy <= this (meters)
    "timeout_s": 60.0,                  # Maximum wait for a good enough fix (seconds)
    "stale_fallback_window_min": 5.0,   # Maximum age of a last-known fix at timeout (minutes)
}

# Provider subscription
PROVIDER_CONFIG = {
    "min_time_ms": 1000,     # Minimum spacing between updates
    "min_distance_m": 1.0,   # Minimum movement between updates
}

# Retained candidate persistence
STORE_CONFIG = {
    "path": "state/candidates.json",
}

# Logging
LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
