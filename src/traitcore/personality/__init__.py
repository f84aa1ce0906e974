"""Personality calibration: five ordered behaviour dimensions per user.

Stored in ``profile/personality-profile.json``; context overlays (coding,
finance, personal, ...) adjust the rendered instructions per response.
"""
