"""
sheetvoice: spreadsheet rows to synthesized audio files.

Records are extracted from CSV/XLSX uploads, synthesized one by one in a
background job with pollable progress, and archived in a library for later
playback and removal.
"""

__version__ = "0.1.0"
