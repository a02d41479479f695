"""
Forum Transformer

A resumable, schema-migrating ETL engine that moves a complete forum database
into the ForkBB schema.

Supports:
- Multiple source products (ForkBB, FluxBB_by_Visman, PunBB)
- Copy, merge and exact-copy run modes
- Bounded batches driven by a persisted (step, cursor) position
- Old-to-new primary key remapping through temporary id_old columns
- Username and email collision resolution
"""

__version__ = "0.1.0"
