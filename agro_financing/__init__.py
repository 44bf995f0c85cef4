"""
Bolívar Digital Agro Financing

Back office for agricultural financing: farmer and parcel registry, field
inspections, Decimal payment schedules (French and linear), a role-gated
status workflow and a hash-chained audit trail.
"""

__version__ = "1.0.0"
