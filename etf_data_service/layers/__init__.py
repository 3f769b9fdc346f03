"""
Data flow layers
  Layer 1 – Acquisition  : Polygon.io REST client
  Layer 2 – Cache        : TTL repositories over the record store
  Layer 3 – Processing   : bar normalisation, quote derivation, ranking
  Layer 4 – Analysis     : technical indicators and scoring snapshots

The market-hours gate sits beside them and decides whether intraday tiers run.
"""
