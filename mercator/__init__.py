"""Mercator — carrier rule and pricing engine for a freight-forwarding back office.

Mercator classifies RoRo cargo into vehicle categories, decides carrier
acceptance against port, vessel and category scoped limits, computes the
chargeable linear-meter / CBM measure, raises surcharge events and resolves
the margin rules used to turn carrier costs into quotation lines.
"""

__version__ = "0.1.0"
