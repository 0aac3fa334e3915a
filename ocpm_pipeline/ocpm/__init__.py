"""
OCPM dataset builder

This package converts an input workbook plus an entity catalog into the JSON
fragments of an object-centric process model (events, objects, attributes,
relations, variants, case-table dimensions) and assembles them into one
dataset document.
"""

__version__ = "1.0.0"
