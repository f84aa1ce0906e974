"""Identity intelligence: evidence-backed profile fields for one user.

Fields are grouped as:
    stableTraits            # name, language, style, tone, assistant name, occupation
    dynamicPreferences      # verbosity, depth, citations, skill focus
    temporalSessionIntent   # current intent, expires after a TTL
plus decayed tool-affinity counters and running metrics.
"""
